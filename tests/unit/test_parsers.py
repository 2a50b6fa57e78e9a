"""Tests for structured JSON recovery from model replies."""
import pytest

from src.errors import UnparsableResponse
from src.gates.parsers import (
    extract_json,
    extract_json_with_trace,
    normalize_single_quotes,
    quote_bare_keys,
    remove_trailing_commas,
)


class TestExtractJson:
    def test_plain_object(self):
        """A clean JSON reply parses directly."""
        parsed, layer = extract_json_with_trace('{"a": 1}')
        assert parsed == {"a": 1}
        assert layer == "direct"

    def test_leading_prose(self):
        """Prose before the object is ignored."""
        assert extract_json('Sure! {"a":1}') == {"a": 1}

    def test_prose_on_both_sides(self):
        """The first balanced object is taken even with trailing chatter."""
        raw = 'Here you go:\n{"a": {"b": [1, 2]}}\nLet me know if you need more.'
        parsed, layer = extract_json_with_trace(raw)
        assert parsed == {"a": {"b": [1, 2]}}
        assert layer == "span"

    def test_markdown_fence(self):
        """Fenced JSON is tolerated."""
        raw = '```json\n{"projectType": "landing"}\n```'
        assert extract_json(raw) == {"projectType": "landing"}

    def test_braces_inside_strings(self):
        """Braces in string values do not break the span scan."""
        raw = 'Result: {"template": "function() { return 1 }", "n": 2} done'
        assert extract_json(raw) == {"template": "function() { return 1 }", "n": 2}

    def test_trailing_comma_repaired(self):
        """A trailing comma is fixed by the repair layer."""
        parsed, layer = extract_json_with_trace('{"a":1,}')
        assert parsed == {"a": 1}
        assert layer == "repaired"

    def test_bare_keys_and_single_quotes(self):
        """Bare keys and single-quoted strings are repaired together."""
        assert extract_json("{name: 'demo', items: ['a', 'b'],}") == {
            "name": "demo",
            "items": ["a", "b"],
        }

    def test_repair_keeps_string_content(self):
        """Only the trailing comma changes; commas, colons and apostrophes inside strings survive."""
        raw = """{"description": "Don't miss it, hero: big image", "tone": "warm",}"""
        parsed, layer = extract_json_with_trace(raw)
        assert parsed == {"description": "Don't miss it, hero: big image", "tone": "warm"}
        assert layer == "repaired"

    def test_truncated_object_completed(self):
        """A reply cut off mid-object is completed by the json-repair layer."""
        parsed, layer = extract_json_with_trace('Analysis: {"projectType": "landing", "pages": ["Home"')
        assert parsed == {"projectType": "landing", "pages": ["Home"]}
        assert layer == "json-repair"

    def test_array_is_not_an_object(self):
        """Top-level arrays do not count as success."""
        with pytest.raises(UnparsableResponse):
            extract_json("[1, 2, 3]")

    def test_no_json_keeps_raw_text(self):
        """Failure carries the original text."""
        raw = "I could not produce the analysis."
        with pytest.raises(UnparsableResponse) as excinfo:
            extract_json(raw)
        assert excinfo.value.raw_text == raw
        assert isinstance(excinfo.value, ValueError)


class TestRepairs:
    def test_remove_trailing_commas(self):
        assert remove_trailing_commas('{"a": [1, 2,], }') == '{"a": [1, 2] }'

    def test_quote_bare_keys(self):
        assert quote_bare_keys('{a: 1, b_c: 2}') == '{"a": 1, "b_c": 2}'

    def test_normalize_single_quotes(self):
        assert normalize_single_quotes("{'a': 'it\\'s'}") == '{"a": "it\'s"}'
