"""
Context windowing around the cursor.
"""

from __future__ import annotations

import re
from typing import List

from tabby_agent.config import DEFAULT_MAX_PREFIX_LINES, DEFAULT_MAX_SUFFIX_LINES
from tabby_agent.types import CompletionRequest, Segments

# A line and its terminator; the last line may have none
_LINE_PATTERN = re.compile(r"[^\r\n]*(?:\r\n|\n|\r|$)")


def split_lines(text: str) -> List[str]:
    """
    Split text into lines, keeping line endings.

    "".join(split_lines(text)) == text for any text.

    Example:
        >>> split_lines("a\\nb\\r\\nc")
        ['a\\n', 'b\\r\\n', 'c']
    """
    return [line for line in _LINE_PATTERN.findall(text) if line]


def is_blank(text: str) -> bool:
    """True if text is empty or whitespace only."""
    return not text.strip()


def create_segments(
    request: CompletionRequest,
    max_prefix_lines: int = DEFAULT_MAX_PREFIX_LINES,
    max_suffix_lines: int = DEFAULT_MAX_SUFFIX_LINES,
) -> Segments:
    """
    Build the prefix/suffix window sent to the server.

    The prefix is at most the last max_prefix_lines lines of the text
    before the cursor, the suffix at most the first max_suffix_lines
    lines after it. prefix + suffix is a contiguous slice of the text
    around the cursor.
    """
    prefix_lines = split_lines(request.text[: request.position])
    suffix_lines = split_lines(request.text[request.position :])
    return Segments(
        prefix="".join(prefix_lines[max(len(prefix_lines) - max_prefix_lines, 0) :]),
        suffix="".join(suffix_lines[:max_suffix_lines]),
    )
