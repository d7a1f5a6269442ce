"""Unit tests for model reply normalization (JSON extraction and safety checks)."""

from __future__ import annotations

import sys

import pytest

from tidy.analysis.normalizer import (
    EmptyInputError,
    NoJsonFoundError,
    ParseFailure,
    SecurityViolationError,
    extract_json,
    is_balanced,
    parse,
    safe_parse,
    sanitize_input,
)
from tidy.observability.telemetry import get_counter


class TestParse:
    def test_fenced_json_block_parses_exactly(self):
        payload = '{"score": 82, "issues": [{"id": "a", "title": "t"}], "summary": "ok"}'
        text = f"Here you go:\n```json\n{payload}\n```\nThanks"
        assert parse(text) == {
            "score": 82,
            "issues": [{"id": "a", "title": "t"}],
            "summary": "ok",
        }

    def test_untagged_fence_with_object(self):
        assert parse('```\n{"score": 1}\n```') == {"score": 1}

    def test_object_embedded_in_prose(self):
        assert parse('Result: {"score": 90, "summary": "fine"} done') == {
            "score": 90,
            "summary": "fine",
        }

    def test_empty_input_rejected(self):
        with pytest.raises(EmptyInputError):
            parse("")

    def test_prose_without_json(self):
        with pytest.raises(NoJsonFoundError):
            parse("The code looks good overall.")

    def test_unbalanced_braces_not_extracted(self):
        with pytest.raises(NoJsonFoundError):
            parse('{"score": 90, "issues": [}')

    def test_malformed_json_is_parse_failure(self):
        with pytest.raises(ParseFailure):
            parse('```json\n{"score": 90,,}\n```')

    def test_array_is_not_an_object(self):
        with pytest.raises(ParseFailure):
            parse("```json\n[1, 2]\n```")

    @pytest.mark.parametrize("key", ["__proto__", "constructor", "prototype"])
    def test_dangerous_keys_rejected(self, key):
        with pytest.raises(SecurityViolationError):
            parse(f'{{"score": 1, "{key}": {{"polluted": true}}}}')

    def test_dangerous_key_nested(self):
        with pytest.raises(SecurityViolationError):
            parse('{"issues": [{"id": "x", "meta": {"__proto__": 1}}]}')
        assert get_counter("analysis.normalizer.security_violation") == 1


class TestSafeParse:
    def test_unbalanced_braces_fall_back(self):
        result = safe_parse("{{{ not json", "security")
        assert result["score"] == 85
        assert result["issues"][0]["id"] == "security-parsing-fallback"
        assert result["summary"] == "security analysis completed with safe fallback parsing"

    def test_security_violation_falls_back(self):
        result = safe_parse('{"constructor": 1}', "testing")
        assert result["issues"][0]["category"] == "parsing"
        assert "dangerous key" in result["issues"][0]["description"]

    def test_valid_reply_passes_through(self):
        assert safe_parse('{"score": 40}', "performance") == {"score": 40}

    @pytest.mark.skipif(
        not hasattr(sys, "get_int_max_str_digits"), reason="no integer digit limit"
    )
    def test_oversized_integer_falls_back(self):
        reply = '{"score": ' + "9" * 5000 + "}"
        with pytest.raises(ParseFailure):
            parse(reply)
        assert safe_parse(reply, "security")["issues"][0]["id"] == "security-parsing-fallback"

    def test_deep_nesting_falls_back(self):
        reply = '{"a": ' + "[" * 100_000 + "]" * 100_000 + "}"
        with pytest.raises(ParseFailure):
            parse(reply)
        assert safe_parse(reply, "testing")["score"] == 85


def test_sanitize_strips_scripts_and_js_urls():
    text = 'a<script>alert(1)</script>b <iframe src="x"></iframe> javascript:alert(2) c'
    cleaned = sanitize_input(text)
    assert "<script>" not in cleaned
    assert "<iframe" not in cleaned
    assert "javascript:" not in cleaned
    assert cleaned.startswith("ab")


def test_is_balanced():
    assert is_balanced('{"a": [1, {"b": 2}]}')
    assert not is_balanced('{"a": [1}')
    assert not is_balanced("}{")


def test_extract_prefers_json_fence():
    text = '{"outer": 1}\n```json\n{"inner": 2}\n```'
    assert extract_json(text) == '{"inner": 2}'
