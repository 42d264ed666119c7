"""Default post-processing of completion responses."""

from __future__ import annotations

from dataclasses import replace

from tabby_agent.segments import is_blank
from tabby_agent.types import CompletionRequest, CompletionResponse


def postprocess(request: CompletionRequest, response: CompletionResponse) -> CompletionResponse:
    """
    Drop blank choices and repeated texts, keeping server order.

    Pure: returns a new response and leaves the input untouched.
    """
    seen = set()
    choices = []
    for choice in response.choices:
        if is_blank(choice.text) or choice.text in seen:
            continue
        seen.add(choice.text)
        choices.append(choice)
    return replace(response, choices=tuple(choices))
