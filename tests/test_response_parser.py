"""Tests for the tolerant LLM response parser."""
import json

import pytest

from unfoldy.nlg.response_parser import (
    FALLBACK_CHOICES,
    MAX_FALLBACK_NARRATIVE,
    PLACEHOLDER_NARRATIVE,
    extract_json_candidate,
    parse_response,
    repair_unescaped_quotes,
)

GOOD = {
    "narrative": "The rain never stops in this city.",
    "imagePrompt": "Black and white, high contrast ink style, a detective under a streetlamp",
    "choices": ["Follow the stranger", "Enter the bar", "Call the precinct"],
}


class TestStrictParse:
    def test_plain_json(self):
        result = parse_response(json.dumps(GOOD))
        assert result.narrative == GOOD["narrative"]
        assert result.image_prompt == GOOD["imagePrompt"]
        assert result.choices == GOOD["choices"]
        assert result.parse_stage == "direct"
        assert result.used_fallback is False

    def test_fenced_json(self):
        raw = "```json\n" + json.dumps(GOOD, indent=2) + "\n```"
        result = parse_response(raw)
        assert result.parse_stage == "direct"
        assert result.choices == GOOD["choices"]

    def test_prose_around_object(self):
        raw = "Sure! Here is the next scene:\n" + json.dumps(GOOD) + "\nEnjoy the story."
        result = parse_response(raw)
        assert result.parse_stage == "direct"
        assert result.narrative == GOOD["narrative"]

    def test_choices_clamped_to_three(self):
        payload = dict(GOOD, choices=["a", "b", "c", "d", "e"])
        assert parse_response(json.dumps(payload)).choices == ["a", "b", "c"]

    def test_non_list_choices_become_empty(self):
        payload = dict(GOOD, choices="run away")
        assert parse_response(json.dumps(payload)).choices == []

    def test_blank_choices_dropped(self):
        payload = dict(GOOD, choices=["  ", "Wait", None])
        assert parse_response(json.dumps(payload)).choices == ["Wait"]

    def test_missing_narrative_uses_placeholder(self):
        payload = {"imagePrompt": "x", "choices": ["a"]}
        assert parse_response(json.dumps(payload)).narrative == PLACEHOLDER_NARRATIVE

    def test_empty_choices_on_final_turn_output(self):
        payload = dict(GOOD, choices=[])
        assert parse_response(json.dumps(payload)).choices == []

    def test_unicode_preserved(self):
        payload = dict(GOOD, narrative="비가 그치지 않는 도시.")
        assert parse_response(json.dumps(payload, ensure_ascii=False)).narrative == "비가 그치지 않는 도시."


class TestLenientParse:
    def test_unescaped_interior_quotes(self):
        raw = (
            '{"narrative": "The stranger whispered "run" and vanished into the fog.", '
            '"imagePrompt": "Black and white, a foggy pier", '
            '"choices": ["Chase the stranger", "Stay put", "Light a cigarette"]}'
        )
        result = parse_response(raw)
        assert result.parse_stage == "fields"
        assert result.narrative == 'The stranger whispered "run" and vanished into the fog.'
        assert result.image_prompt == "Black and white, a foggy pier"
        assert result.choices == ["Chase the stranger", "Stay put", "Light a cigarette"]

    def test_truncated_output_keeps_narrative(self):
        raw = '{"narrative": "The door creaks open and a cold wind'
        result = parse_response(raw)
        assert result.parse_stage == "truncated"
        assert result.narrative == "The door creaks open and a cold wind"
        assert result.choices == []

    def test_interior_quotes_before_unknown_key_are_repaired(self):
        raw = '{"narrative": "He said "hi" today", "mood": "dark", "choices": ["Wave back"]}'
        result = parse_response(raw)
        assert result.parse_stage == "repaired"
        assert result.narrative == 'He said "hi" today'
        assert result.choices == ["Wave back"]
        assert result.image_prompt == ""

    def test_interior_quotes_before_non_string_value_are_repaired(self):
        result = parse_response('{"narrative": "The sign read "CLOSED" in red", "turn": 3}')
        assert result.parse_stage == "repaired"
        assert result.narrative == 'The sign read "CLOSED" in red'

    def test_escaped_newlines_decoded(self):
        raw = '{"narrative": "Line one.\\nLine "two".", "choices": ["Go"]}'
        result = parse_response(raw)
        assert result.narrative == 'Line one.\nLine "two".'
        assert result.choices == ["Go"]


class TestFallback:
    def test_garbage_gets_stock_choices(self):
        result = parse_response("I'm sorry, I can't continue this story.")
        assert result.parse_stage == "fallback"
        assert result.narrative == "I'm sorry, I can't continue this story."
        assert result.choices == list(FALLBACK_CHOICES)
        assert result.image_prompt == ""

    def test_fallback_narrative_is_capped(self):
        result = parse_response("word " * 400)
        assert len(result.narrative) <= MAX_FALLBACK_NARRATIVE

    @pytest.mark.parametrize("raw", ["", None, "[]", "42", "{", '{"narrative": 5}', "```json\n```", "{" * 5000])
    def test_never_raises(self, raw):
        result = parse_response(raw)
        assert result.narrative
        assert len(result.choices) <= 3


class TestHelpers:
    def test_extract_from_fence(self):
        assert extract_json_candidate('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_extract_outermost_object(self):
        assert extract_json_candidate('noise {"a": {"b": 1}} tail') == '{"a": {"b": 1}}'

    def test_extract_stops_at_first_balanced_object(self):
        raw = '{"narrative": "A {strange} sign."} Note: {not part of it}'
        assert extract_json_candidate(raw) == '{"narrative": "A {strange} sign."}'

    def test_braces_in_trailing_prose_still_parse_strictly(self):
        raw = json.dumps(GOOD) + "\nHope you like it {wink}"
        result = parse_response(raw)
        assert result.parse_stage == "direct"
        assert result.choices == GOOD["choices"]

    def test_extract_unbalanced_keeps_tail(self):
        assert extract_json_candidate('ok {"narrative": "cut') == '{"narrative": "cut'

    def test_repair_escapes_interior_quotes(self):
        repaired = repair_unescaped_quotes('{"narrative": "He said "hi" today"}')
        assert json.loads(repaired) == {"narrative": 'He said "hi" today'}

    def test_repair_escapes_raw_newlines(self):
        repaired = repair_unescaped_quotes('{"narrative": "one\ntwo"}')
        assert json.loads(repaired) == {"narrative": "one\ntwo"}

    def test_repair_leaves_valid_json_alone(self):
        text = json.dumps(GOOD)
        assert repair_unescaped_quotes(text) == text


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
