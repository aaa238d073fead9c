"""Tests for recovering per-line translations from model answers."""

import pytest

from subllm_ass.prompts import DEFAULT_SEPARATOR
from subllm_ass.response_parser import (
    BlankLineStrategy,
    JsonArrayStrategy,
    NumberedLineStrategy,
    ResponseParser,
    SeparatorStrategy,
    TargetScriptStrategy,
    fit_to_count,
    parse_translation_response,
    strip_enumeration,
)


class TestHelpers:
    @pytest.mark.parametrize(
        "line,expected",
        [
            ("1. Hola", "Hola"),
            ("12) Hola", "Hola"),
            ("(3) Hola", "Hola"),
            ("• Hola", "Hola"),
            ("- Hola", "- Hola"),
            ("Hola", "Hola"),
            ("3.5 million", "3.5 million"),
            ("10:30 sharp", "10:30 sharp"),
            ("1999-2000 season", "1999-2000 season"),
        ],
    )
    def test_strip_enumeration(self, line, expected):
        assert strip_enumeration(line) == expected

    def test_fit_pads_and_truncates(self):
        assert fit_to_count(["a"], 3) == ["a", "", ""]
        assert fit_to_count(["a", "b", "c"], 2) == ["a", "b"]


class TestStrategies:
    def test_json_array(self):
        response = '```json\n["سلام", "خداحافظ"]\n```'
        assert JsonArrayStrategy().parse(response, 2, None) == ["سلام", "خداحافظ"]

    def test_json_array_passes_without_brackets(self):
        assert JsonArrayStrategy().parse("1. a", 1, None) is None

    def test_blank_line_blocks(self):
        assert BlankLineStrategy().parse("uno\n\n3.5 dos", 2, None) == ["uno", "3.5 dos"]

    def test_blank_line_leaves_numbered_blocks(self):
        assert BlankLineStrategy().parse("1. uno\n\n2. dos", 2, None) is None

    def test_numbered_lines_skip_bare_numbers(self):
        response = "1.\nuno\n2.\ndos"
        assert NumberedLineStrategy().parse(response, 2, None) == ["uno", "dos"]

    def test_separator(self):
        response = f"uno\n{DEFAULT_SEPARATOR}\ndos"
        assert SeparatorStrategy().parse(response, 2, DEFAULT_SEPARATOR) == ["uno", "dos"]

    def test_separator_keeps_leading_digits(self):
        response = f"10:30 works\n{DEFAULT_SEPARATOR}\n1999-2000 season"
        assert SeparatorStrategy().parse(response, 2, DEFAULT_SEPARATOR) == ["10:30 works", "1999-2000 season"]

    def test_separator_passes_when_absent(self):
        assert SeparatorStrategy().parse("uno", 1, DEFAULT_SEPARATOR) is None
        assert SeparatorStrategy().parse("uno", 1, None) is None

    def test_target_script_filters_chatter(self):
        response = "Here are the translations:\nسلام\nخداحافظ"
        assert TargetScriptStrategy("Persian").parse(response, 2, None) == ["سلام", "خداحافظ"]


class TestResponseParser:
    def test_numbered_answer(self):
        parser = ResponseParser("Spanish")
        assert parser.parse("1. Hola\n2. Adiós\n3. Gracias", 3) == ["Hola", "Adiós", "Gracias"]
        assert parser.last_strategy == "numbered_line"

    def test_first_plausible_strategy_wins(self):
        parser = ResponseParser("Persian")
        assert parser.parse('["a", "b"]', 2) == ["a", "b"]
        assert parser.last_strategy == "json_array"

    def test_output_always_has_expected_length(self):
        parser = ResponseParser("Persian")
        assert parser.parse("1. سلام", 3) == ["سلام", "", ""]
        assert len(parser.parse("1. a\n2. b\n3. c\n4. d", 2)) == 2

    def test_empty_answer(self):
        assert ResponseParser("Persian").parse("   ", 2) == ["", ""]

    def test_zero_expected(self):
        assert ResponseParser("Persian").parse("anything", 0) == []

    def test_single_line_answer_starting_with_digits(self):
        parser = ResponseParser("English")
        assert parser.parse("3.5 million dollars", 1) == ["3.5 million dollars"]
        assert parser.parse("10:30 works", 1) == ["10:30 works"]

    def test_separated_answer_starting_with_digits(self):
        response = f"10:30 works\n{DEFAULT_SEPARATOR}\n1999-2000 season"
        assert ResponseParser("English").parse(response, 2, DEFAULT_SEPARATOR) == ["10:30 works", "1999-2000 season"]

    def test_numbered_blocks_with_blank_lines(self):
        parser = ResponseParser("Spanish")
        assert parser.parse("1. Hola\n\n2. 3.5 millones", 2) == ["Hola", "3.5 millones"]
        assert parser.last_strategy == "numbered_line"

    def test_dialogue_dash_kept(self):
        assert parse_translation_response("1. - ¿Quién?\n2. - Yo.", 2, "Spanish") == ["- ¿Quién?", "- Yo."]

    def test_chatter_recovered_by_target_script(self):
        response = "Sure! Here you go:\nسلام\nخداحافظ\nامیدوارم کمک کند\nLet me know."
        parser = ResponseParser("Persian")
        result = parser.parse(response, 3)
        assert result == ["سلام", "خداحافظ", "امیدوارم کمک کند"]
        assert parser.last_strategy == "target_script"

    def test_custom_strategy_chain(self):
        parser = ResponseParser("Spanish", strategies=[SeparatorStrategy()])
        assert parser.parse("uno", 1) == [""]
        assert parser.last_strategy is None
