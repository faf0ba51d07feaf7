"""Tests for prompt parsing."""

import io

import pytest

from segment_stream.ml.prompts import (
    NO_PROMPT_MESSAGE,
    parse_prompt,
    parse_prompt_line,
    parse_prompts,
    read_prompt_update,
)
from segment_stream.ml.types import Prompt, PromptBox


class TestParsePrompt:
    """Test the single prompt grammar."""

    def test_text_only(self):
        assert parse_prompt("shoe") == Prompt(text="shoe")

    def test_text_with_spaces(self):
        assert parse_prompt("  playing card ").text == "playing card"

    def test_text_and_box(self):
        prompt = parse_prompt("shoe;pos:480,290,110,360")

        assert prompt.text == "shoe"
        assert prompt.boxes == (PromptBox(480, 290, 110, 360, positive=True),)

    def test_visual_only(self):
        prompt = parse_prompt("pos:480,290,110,360")

        assert prompt.text is None
        assert prompt.label == "visual"
        assert len(prompt.boxes) == 1

    def test_negative_box(self):
        prompt = parse_prompt("cat;pos:0,0,10,10;neg:5,5,2,2")

        assert [b.positive for b in prompt.boxes] == [True, False]

    def test_case_insensitive_labels(self):
        assert parse_prompt("POS:1,2,3,4").boxes[0].positive is True

    def test_float_coordinates(self):
        box = parse_prompt("pos:1.5, 2.5, 3, 4").boxes[0]

        assert (box.x, box.y, box.w, box.h) == (1.5, 2.5, 3.0, 4.0)

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            " ; ",
            "pos:1,2,3",
            "pos:a,b,c,d",
            "pos:1,2,0,4",
            "shoe;sock",
        ],
    )
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_prompt(raw)


class TestParsePrompts:
    """Test prompt lists."""

    def test_empty_list(self):
        with pytest.raises(ValueError) as exc_info:
            parse_prompts([])

        assert str(exc_info.value) == NO_PROMPT_MESSAGE

    def test_multiple(self):
        prompts = parse_prompts(["person", "pos:1,2,3,4"])

        assert [p.label for p in prompts] == ["person", "visual"]


class TestParsePromptLine:
    """Test the interactive update line."""

    def test_pipe_separated(self):
        prompts = parse_prompt_line("car | bus;pos:1,1,5,5\n")

        assert [p.text for p in prompts] == ["car", "bus"]

    @pytest.mark.parametrize("line", ["", "\n", "   ", " | | "])
    def test_blank_keeps_current(self, line):
        assert parse_prompt_line(line) is None

    def test_invalid_raises(self):
        with pytest.raises(ValueError):
            parse_prompt_line("pos:1,2")


class TestReadPromptUpdate:
    """Test the blocking prompt reader."""

    def test_reads_line(self):
        stream = io.StringIO()

        prompts = read_prompt_update(lambda: "dog|cat\n", stream=stream)

        assert [p.text for p in prompts] == ["dog", "cat"]
        assert "New prompt(s)" in stream.getvalue()

    def test_empty_line(self):
        assert read_prompt_update(lambda: "\n", stream=io.StringIO()) is None

    def test_end_of_input(self):
        assert read_prompt_update(lambda: "", stream=io.StringIO()) is None

    def test_invalid_input_keeps_current(self, caplog):
        result = read_prompt_update(lambda: "neg:1\n", stream=io.StringIO())

        assert result is None
        assert "Ignoring prompt update" in caplog.text
