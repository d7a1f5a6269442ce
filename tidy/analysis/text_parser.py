"""
Heuristic parser for model replies that contain no JSON at all.

Scans the text line by line for issue and suggestion cues and infers
severity, category and impact from keywords. Output has the same dict shape
as a parsed JSON reply so analyzers treat both paths alike.
"""

from __future__ import annotations

import re
from typing import Any

_SCORE_PATTERNS = (
    re.compile(r"score[:\s]*(\d{1,3})(?!\d)", re.IGNORECASE),
    re.compile(r"rating[:\s]*(\d{1,3})(?!\d)", re.IGNORECASE),
    re.compile(r"(?<!\d)(\d{1,3})\s*[/\\]\s*100"),
    re.compile(r"(?<!\d)(\d{1,3})%"),
)

_ISSUE_PATTERNS = (
    re.compile(r"(?:issue|problem|error|bug|vulnerability)[:\s]+(.+)", re.IGNORECASE),
    re.compile(r"^[-•*]\s*(.+)"),
    re.compile(r"(?:security|warning|danger)[:\s]+(.+)", re.IGNORECASE),
)

_SUGGESTION_PATTERNS = (
    re.compile(r"(?:suggestion|recommendation|fix)[:\s]+(.+)", re.IGNORECASE),
    re.compile(r"(?:should|consider|try|suggest|recommend)[:\s]+(.+)", re.IGNORECASE),
    re.compile(r"(?:improve|enhance|optimize)[:\s]+(.+)", re.IGNORECASE),
)

SUMMARY_CHARS = 200
TITLE_CHARS = 50


def extract_score(text: str, default: int) -> int:
    for pattern in _SCORE_PATTERNS:
        match = pattern.search(text)
        if match:
            return max(0, min(100, int(match.group(1))))
    return default


def infer_severity(text: str) -> str:
    lower = text.lower()
    if any(word in lower for word in ("critical", "severe", "danger")):
        return "critical"
    if any(word in lower for word in ("high", "important", "major")):
        return "high"
    if any(word in lower for word in ("medium", "moderate")):
        return "medium"
    if any(word in lower for word in ("security", "vulnerability", "injection")):
        return "high"
    if any(word in lower for word in ("performance", "error", "bug")):
        return "medium"
    return "low"


def infer_category(text: str, default: str = "general") -> str:
    lower = text.lower()
    if any(word in lower for word in ("security", "vulnerability", "injection", "xss")):
        return "security"
    if any(word in lower for word in ("performance", "speed", "optimization")):
        return "performance"
    if any(word in lower for word in ("maintainability", "readability", "complexity")):
        return "maintainability"
    if any(word in lower for word in ("test", "coverage")):
        return "testing"
    if any(word in lower for word in ("documentation", "comment", "doc")):
        return "documentation"
    return default


def infer_impact(text: str) -> str:
    lower = text.lower()
    if any(word in lower for word in ("critical", "severe", "high impact")):
        return "high"
    if "low impact" in lower or "minor" in lower:
        return "low"
    return "medium"


def summarize(text: str) -> str:
    text = text.strip()
    return text[:SUMMARY_CHARS] + ("..." if len(text) > SUMMARY_CHARS else "")


def _first_match(patterns: tuple[re.Pattern[str], ...], line: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(line)
        if match:
            return match.group(1).strip()
    return None


def parse_text_response(
    text: str,
    kind: str,
    *,
    default_score: int = 75,
    default_issue: dict[str, Any] | None = None,
    default_suggestion: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build a reply dict (score/issues/suggestions/summary) from free text.

    Args:
        text: Raw model reply
        kind: Analyzer kind, used for ids and as the default category
        default_score: Score when the text names none
        default_issue: Placeholder issue when no cue line is found
        default_suggestion: Placeholder suggestion when no cue line is found
    """
    issues: list[dict[str, Any]] = []
    suggestions: list[dict[str, Any]] = []
    current_issue: dict[str, Any] | None = None
    current_suggestion: dict[str, Any] | None = None

    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line:
            continue

        issue_text = _first_match(_ISSUE_PATTERNS, line)
        if issue_text:
            if current_issue:
                issues.append(current_issue)
            current_issue = {
                "id": f"{kind}-issue-{len(issues) + 1}",
                "severity": infer_severity(line),
                "title": issue_text[:TITLE_CHARS],
                "description": issue_text,
                "category": infer_category(line, default=kind),
                "confidence": 0.7,
            }
            current_suggestion = None
            continue

        suggestion_text = _first_match(_SUGGESTION_PATTERNS, line)
        if suggestion_text:
            if current_suggestion:
                suggestions.append(current_suggestion)
            current_suggestion = {
                "id": f"{kind}-suggestion-{len(suggestions) + 1}",
                "title": suggestion_text[:TITLE_CHARS],
                "description": suggestion_text,
                "impact": infer_impact(line),
                "effort": "medium",
                "explanation": suggestion_text,
            }
            current_issue = None
            continue

        # Continuation lines extend whichever item is open
        if len(line) > 10:
            if current_issue:
                current_issue["description"] += " " + line
            elif current_suggestion:
                current_suggestion["explanation"] += " " + line

    if current_issue:
        issues.append(current_issue)
    if current_suggestion:
        suggestions.append(current_suggestion)

    if not issues:
        issues.append(
            default_issue
            or {
                "id": "basic-analysis",
                "severity": "low",
                "title": "Analysis completed",
                "description": "Basic analysis performed successfully",
                "category": "general",
                "confidence": 0.8,
            }
        )
    if not suggestions:
        suggestions.append(
            default_suggestion
            or {
                "id": "general-improvement",
                "title": "Review code for potential improvements",
                "description": "Consider reviewing the code for best practices and optimizations",
                "impact": "medium",
                "effort": "medium",
                "explanation": "Regular code review helps maintain quality",
            }
        )

    return {
        "score": extract_score(text, default_score),
        "issues": issues,
        "suggestions": suggestions,
        "summary": summarize(text),
    }
