"""Tests for context windowing and default post-processing."""

import pytest

from tabby_agent.postprocess import postprocess
from tabby_agent.segments import create_segments, is_blank, split_lines
from tabby_agent.types import Choice, CompletionRequest, CompletionResponse


class TestSplitLines:
    """Tests for split_lines()."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("", []),
            ("abc", ["abc"]),
            ("a\nb", ["a\n", "b"]),
            ("a\n", ["a\n"]),
            ("a\r\nb\rc\n", ["a\r\n", "b\r", "c\n"]),
            ("\n\n", ["\n", "\n"]),
        ],
    )
    def test_split(self, text, expected):
        assert split_lines(text) == expected

    def test_join_restores_text(self):
        text = "def f():\r\n    return 1\n\n# end"
        assert "".join(split_lines(text)) == text


class TestIsBlank:
    @pytest.mark.parametrize("text", ["", " ", "\n\t  \r\n"])
    def test_blank(self, text):
        assert is_blank(text)

    def test_not_blank(self):
        assert not is_blank("  x\n")


class TestCreateSegments:
    """Tests for create_segments()."""

    def test_short_text_is_kept_whole(self):
        request = CompletionRequest(text="a\nb = \nc\n", position=6)

        segments = create_segments(request)

        assert segments.prefix == "a\nb = "
        assert segments.suffix == "\nc\n"

    def test_prefix_keeps_last_lines(self):
        request = CompletionRequest(text="1\n2\n3\n4", position=7)

        segments = create_segments(request, max_prefix_lines=2)

        assert segments.prefix == "3\n4"
        assert segments.suffix == ""

    def test_suffix_keeps_first_lines(self):
        request = CompletionRequest(text="1\n2\n3\n4", position=0)

        segments = create_segments(request, max_suffix_lines=2)

        assert segments.prefix == ""
        assert segments.suffix == "1\n2\n"

    def test_cursor_at_line_start(self):
        request = CompletionRequest(text="a\nb\n", position=2)

        segments = create_segments(request, max_prefix_lines=1, max_suffix_lines=1)

        assert segments.prefix == "a\n"
        assert segments.suffix == "b\n"

    def test_window_is_contiguous(self):
        text = "".join(f"row {i}\r\n" for i in range(100))
        position = text.index("row 60")
        request = CompletionRequest(text=text, position=position)

        segments = create_segments(request, max_prefix_lines=5, max_suffix_lines=3)

        assert segments.prefix + segments.suffix in text
        assert text.index(segments.prefix + segments.suffix) + len(segments.prefix) == position
        assert segments.suffix == "row 60\r\nrow 61\r\nrow 62\r\n"


class TestPostprocess:
    """Tests for postprocess()."""

    def test_drops_blank_and_duplicate_choices(self):
        request = CompletionRequest(text="x = ", position=4)
        response = CompletionResponse(
            id="cmpl-1",
            choices=[
                Choice(index=0, text="1"),
                Choice(index=1, text=""),
                Choice(index=2, text="1"),
                Choice(index=3, text="2"),
            ],
        )

        result = postprocess(request, response)

        assert result.id == "cmpl-1"
        assert [(c.index, c.text) for c in result.choices] == [(0, "1"), (3, "2")]
        assert len(response.choices) == 4
