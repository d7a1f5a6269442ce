"""
Response normalizer - safe extraction of a JSON object from model text.

Model replies arrive as fenced JSON, JSON embedded in prose, or prose with no
JSON at all. ``parse`` finds the object, strips active content first, and
refuses prototype-polluting keys (the UI is JavaScript and spreads these
objects). ``safe_parse`` never raises: it returns a deterministic fallback.
"""

from __future__ import annotations

import json
import re
from typing import Any

from tidy.observability.logging import get_logger
from tidy.observability.telemetry import counter

logger = get_logger(__name__)

DANGEROUS_KEYS = frozenset({"__proto__", "constructor", "prototype"})

_ACTIVE_CONTENT_PATTERNS = [
    re.compile(rf"<{tag}\b[^<]*(?:(?!</{tag}>)<[^<]*)*</{tag}>", re.IGNORECASE)
    for tag in ("script", "iframe", "object", "embed")
]
_JAVASCRIPT_URL = re.compile(r"javascript:[^\"'\s]*", re.IGNORECASE)
_DATA_SCRIPT_URL = re.compile(r"data:[^\"'\s]*javascript[^\"'\s]*", re.IGNORECASE)

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_ANY_FENCE_WITH_OBJECT = re.compile(r"```\w*\s*(\{[\s\S]*?\})\s*```")
_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")


class ParseFailure(ValueError):
    """Model text could not be turned into a JSON object."""


class EmptyInputError(ParseFailure):
    """Raised for empty or non-string input."""


class NoJsonFoundError(ParseFailure):
    """No balanced JSON object candidate in the text."""


class SecurityViolationError(ParseFailure):
    """Parsed object contains a prototype-polluting key."""


def sanitize_input(text: str) -> str:
    """Remove script-like elements and javascript/data URLs."""
    sanitized = text
    for pattern in _ACTIVE_CONTENT_PATTERNS:
        sanitized = pattern.sub("", sanitized)
    sanitized = _JAVASCRIPT_URL.sub("", sanitized)
    return _DATA_SCRIPT_URL.sub("", sanitized)


def is_balanced(text: str) -> bool:
    """Brace/bracket balance check; fails as soon as a count goes negative."""
    braces = brackets = 0
    for char in text:
        if char == "{":
            braces += 1
        elif char == "}":
            braces -= 1
        elif char == "[":
            brackets += 1
        elif char == "]":
            brackets -= 1
        if braces < 0 or brackets < 0:
            return False
    return braces == 0 and brackets == 0


def extract_json(text: str) -> str:
    """
    Find the JSON candidate: ```json fence, then any fence holding an
    object, then the widest {...} span if it is balanced.

    Raises:
        NoJsonFoundError: If no candidate qualifies
    """
    match = _JSON_FENCE.search(text)
    if match:
        return match.group(1).strip()

    match = _ANY_FENCE_WITH_OBJECT.search(text)
    if match:
        return match.group(1).strip()

    match = _OBJECT_SPAN.search(text)
    if match and is_balanced(match.group(0)):
        return match.group(0)

    raise NoJsonFoundError("NO_JSON_FOUND: Response does not contain valid JSON")


def _reject_dangerous_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    for key, _ in pairs:
        if key in DANGEROUS_KEYS:
            raise SecurityViolationError(f'Security violation: dangerous key "{key}" detected')
    return dict(pairs)


def parse(raw_text: str) -> dict[str, Any]:
    """
    Extract and parse the JSON object in a model reply.

    Raises:
        EmptyInputError: Empty/non-string input
        NoJsonFoundError: No JSON object found
        SecurityViolationError: Dangerous key at any depth
        ParseFailure: Candidate is not valid JSON or not an object
    """
    if not raw_text or not isinstance(raw_text, str):
        raise EmptyInputError("Empty response: must be a non-empty string")

    candidate = extract_json(sanitize_input(raw_text))
    try:
        parsed = json.loads(candidate, object_pairs_hook=_reject_dangerous_keys)
    except SecurityViolationError:
        counter("analysis.normalizer.security_violation")
        raise
    except json.JSONDecodeError as e:
        raise ParseFailure(f"Malformed JSON: {e.msg}") from e
    except (ValueError, RecursionError) as e:
        # Oversized integer literals and pathological nesting
        raise ParseFailure(f"Unparseable JSON: {type(e).__name__}") from e

    if not isinstance(parsed, dict):
        raise ParseFailure("Expected a JSON object")
    return parsed


def fallback_response(analyzer_type: str, error: BaseException | None = None) -> dict[str, Any]:
    """Deterministic stand-in used when a reply cannot be parsed."""
    reason = str(error) if error else "Unknown parsing error"
    return {
        "score": 85,
        "issues": [
            {
                "id": f"{analyzer_type}-parsing-fallback",
                "severity": "low",
                "title": f"{analyzer_type} analysis completed with fallback",
                "description": f"JSON parsing failed ({reason}), using safe fallback results.",
                "category": "parsing",
                "confidence": 0.5,
            }
        ],
        "suggestions": [
            {
                "id": f"{analyzer_type}-fallback-review",
                "title": "Review analysis results",
                "description": "Analysis completed but may be incomplete due to parsing issues.",
                "impact": "medium",
                "effort": "low",
                "explanation": "Fallback results generated due to response parsing failure",
            }
        ],
        "summary": f"{analyzer_type} analysis completed with safe fallback parsing",
    }


def safe_parse(raw_text: str, analyzer_type: str) -> dict[str, Any]:
    """Like parse(), but returns fallback_response() instead of raising."""
    try:
        return parse(raw_text)
    except ParseFailure as e:
        logger.warning("%s response parse failed, using fallback: %s", analyzer_type, e)
        counter("analysis.normalizer.fallback")
        return fallback_response(analyzer_type, e)
