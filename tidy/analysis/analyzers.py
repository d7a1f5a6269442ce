"""
The six prompt-based analyzers.

Each analyzer builds a domain prompt, calls the completion gateway, normalizes
the reply and returns a tagged outcome:

- ``Ok(result)`` when the model answered (JSON or usable free text)
- ``Fallback(result, error)`` when the gateway failed; the result is a
  degraded-but-valid AnalysisResult and ``error`` lets the orchestrator's
  breaker classify the failure

The analyzer boundary is total: nothing but cancellation escapes it.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from tidy.analysis.normalizer import ParseFailure, SecurityViolationError, fallback_response, parse
from tidy.analysis.text_parser import parse_text_response
from tidy.analysis.types import (
    AnalysisMetadata,
    AnalysisResult,
    AnalyzerOutcome,
    CodeContext,
    Fallback,
    Issue,
    Ok,
    Suggestion,
    clamp_score,
)
from tidy.llm.errors import CompletionError, EmptyResponseError
from tidy.llm.gateway import CompletionClient
from tidy.llm.prompts import get_prompt_loader
from tidy.observability.logging import get_logger
from tidy.observability.telemetry import counter

logger = get_logger(__name__)


Analyzer = Callable[[CodeContext, CompletionClient], Awaitable[AnalyzerOutcome]]


@dataclass(frozen=True)
class AnalyzerSpec:
    """Static description of one analyzer domain."""

    kind: str
    label: str
    prompt_name: str
    fallback_score: int
    default_issue: dict[str, Any]
    default_suggestion: dict[str, Any]
    include_framework: bool = True
    extra: dict[str, Any] = field(default_factory=dict)


CODE_QUALITY = AnalyzerSpec(
    kind="codeQuality",
    label="Code quality",
    prompt_name="code_quality",
    fallback_score=75,
    include_framework=False,
    default_issue={
        "id": "code-quality-check",
        "severity": "low",
        "title": "Code Quality Analysis",
        "description": "Basic code quality checks completed successfully",
        "category": "general",
        "confidence": 0.8,
    },
    default_suggestion={
        "id": "code-review",
        "title": "Review Code Quality",
        "description": "Consider reviewing code for style, naming, and structure improvements",
        "impact": "medium",
        "effort": "medium",
        "explanation": "Code quality improvements enhance maintainability and readability",
    },
)

SECURITY = AnalyzerSpec(
    kind="security",
    label="Security",
    prompt_name="security",
    fallback_score=85,
    default_issue={
        "id": "security-check",
        "severity": "low",
        "title": "Security Analysis Completed",
        "description": "Basic security checks performed",
        "category": "security",
        "confidence": 0.8,
    },
    default_suggestion={
        "id": "security-review",
        "title": "Review Security Practices",
        "description": "Consider implementing security best practices",
        "impact": "high",
        "effort": "medium",
        "explanation": "Security best practices prevent vulnerabilities",
    },
)

PERFORMANCE = AnalyzerSpec(
    kind="performance",
    label="Performance",
    prompt_name="performance",
    fallback_score=75,
    include_framework=False,
    default_issue={
        "id": "performance-check",
        "severity": "low",
        "title": "Performance Analysis Completed",
        "description": "Basic performance checks performed",
        "category": "performance",
        "confidence": 0.8,
    },
    default_suggestion={
        "id": "performance-optimization",
        "title": "Consider Performance Optimizations",
        "description": "Review loops, allocations and async work for optimization opportunities",
        "impact": "medium",
        "effort": "medium",
        "explanation": "Small optimizations add up in frequently executed code",
    },
)

MAINTAINABILITY = AnalyzerSpec(
    kind="maintainability",
    label="Maintainability",
    prompt_name="maintainability",
    fallback_score=75,
    include_framework=False,
    default_issue={
        "id": "maintainability-check",
        "severity": "low",
        "title": "Maintainability Analysis Completed",
        "description": "Basic maintainability checks performed",
        "category": "complexity",
        "confidence": 0.8,
    },
    default_suggestion={
        "id": "maintainability-refactor",
        "title": "Keep Functions Small and Focused",
        "description": "Split large functions and extract hard-coded values into constants",
        "impact": "medium",
        "effort": "medium",
        "explanation": "Smaller units are easier to read, change and test",
    },
)

TESTING = AnalyzerSpec(
    kind="testing",
    label="Testing",
    prompt_name="testing",
    fallback_score=70,
    default_issue={
        "id": "testing-check",
        "severity": "low",
        "title": "Testing Analysis Completed",
        "description": "Basic testability checks performed",
        "category": "testability",
        "confidence": 0.8,
    },
    default_suggestion={
        "id": "testing-coverage",
        "title": "Add Unit Tests",
        "description": "Cover the main code paths and edge cases with unit tests",
        "impact": "medium",
        "effort": "medium",
        "explanation": "Tests catch regressions before they reach users",
    },
)

DOCUMENTATION = AnalyzerSpec(
    kind="documentation",
    label="Documentation",
    prompt_name="documentation",
    fallback_score=75,
    include_framework=False,
    default_issue={
        "id": "documentation-check",
        "severity": "low",
        "title": "Documentation Analysis Completed",
        "description": "Basic documentation checks performed",
        "category": "comments",
        "confidence": 0.8,
    },
    default_suggestion={
        "id": "documentation-review",
        "title": "Document Public Functions",
        "description": "Add doc comments describing parameters, return values and side effects",
        "impact": "low",
        "effort": "low",
        "explanation": "Documentation helps new readers understand intent quickly",
    },
)


# ============================================================================
# Prompt + result building
# ============================================================================


def build_prompt(spec: AnalyzerSpec, context: CodeContext) -> str:
    framework_line = ""
    if spec.include_framework and context.framework:
        framework_line = f"Framework: {context.framework}\n"
    return get_prompt_loader().render(
        spec.prompt_name,
        file_path=context.file_path,
        language=context.language,
        framework_line=framework_line,
        content=context.content,
    )


def _coerce_items(raw: Any, model: type[Issue] | type[Suggestion], prefix: str) -> list[Any]:
    """Validate list items one by one; malformed entries are dropped."""
    if not isinstance(raw, list):
        return []
    items = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            continue
        candidate = dict(item)
        candidate.setdefault("id", f"{prefix}-{index + 1}")
        candidate["id"] = str(candidate["id"])
        try:
            items.append(model.model_validate(candidate))
        except ValidationError:
            counter("analysis.analyzer.item_dropped")
            logger.debug("Dropped malformed %s item %s", prefix, index)
    return items


def build_result(
    spec: AnalyzerSpec, context: CodeContext, data: dict[str, Any], started: float
) -> AnalysisResult:
    """Turn a reply dict into a validated, clamped AnalysisResult."""
    issues = _coerce_items(data.get("issues"), Issue, f"{spec.kind}-issue")
    suggestions = _coerce_items(data.get("suggestions"), Suggestion, f"{spec.kind}-suggestion")
    summary = data.get("summary")

    return AnalysisResult(
        type=spec.kind,
        score=clamp_score(data.get("score"), default=spec.fallback_score),
        issues=issues or [Issue.model_validate(spec.default_issue)],
        suggestions=suggestions or [Suggestion.model_validate(spec.default_suggestion)],
        summary=summary if isinstance(summary, str) and summary else f"{spec.label} analysis completed",
        metadata=AnalysisMetadata(
            analysis_time=int((time.perf_counter() - started) * 1000),
            lines_analyzed=context.lines,
            language=context.language,
        ),
    )


def api_limit_reply(spec: AnalyzerSpec) -> dict[str, Any]:
    """Reply used when the provider returned nothing (token or rate limits)."""
    return {
        "score": spec.fallback_score,
        "issues": [
            {
                "id": f"{spec.kind}-api-limit",
                "severity": "low",
                "title": f"{spec.label} analysis temporarily unavailable",
                "description": "The AI provider returned an empty response (rate or token limit). "
                "Showing general recommendations instead.",
                "category": "api-limit",
                "confidence": 0.6,
            }
        ],
        "suggestions": [spec.default_suggestion],
        "summary": f"{spec.label} analysis temporarily unavailable due to API limits",
    }


def error_reply(spec: AnalyzerSpec, error: BaseException) -> dict[str, Any]:
    code = getattr(error, "code", type(error).__name__)
    return {
        "score": spec.fallback_score,
        "issues": [spec.default_issue],
        "suggestions": [spec.default_suggestion],
        "summary": f"{spec.label} analysis completed with fallback results ({code})",
    }


def parse_reply(spec: AnalyzerSpec, response: str) -> dict[str, Any]:
    """JSON first; free-text heuristics when there is no JSON at all."""
    try:
        return parse(response)
    except SecurityViolationError as e:
        logger.warning("%s reply rejected: %s", spec.kind, e)
        return fallback_response(spec.kind, e)
    except ParseFailure as e:
        logger.info("%s reply had no usable JSON (%s), parsing as text", spec.kind, e)
        counter("analysis.analyzer.text_parse")
        return parse_text_response(
            response,
            spec.kind,
            default_score=spec.fallback_score,
            default_issue=spec.default_issue,
            default_suggestion=spec.default_suggestion,
        )


async def run_analyzer(
    spec: AnalyzerSpec, context: CodeContext, gateway: CompletionClient
) -> AnalyzerOutcome:
    """
    Run one analyzer end to end.

    Returns:
        Ok(result) or Fallback(result, error); never raises (except cancellation)

    Side Effects:
        - Calls the completion gateway once
        - Increments analyzer telemetry counters
    """
    started = time.perf_counter()
    try:
        response = await gateway.generate_completion(build_prompt(spec, context))
    except EmptyResponseError as e:
        counter(f"analysis.{spec.kind}.api_limit")
        logger.warning("%s analysis got an empty response: %s", spec.kind, e)
        return Fallback(build_result(spec, context, api_limit_reply(spec), started), e)
    except CompletionError as e:
        counter(f"analysis.{spec.kind}.fallback")
        logger.warning("%s analysis failed (%s): %s", spec.kind, e.code, e)
        return Fallback(build_result(spec, context, error_reply(spec, e), started), e)
    except Exception as e:
        counter(f"analysis.{spec.kind}.fallback")
        logger.error("%s analysis failed unexpectedly: %s", spec.kind, e)
        return Fallback(build_result(spec, context, error_reply(spec, e), started), e)

    try:
        result = build_result(spec, context, parse_reply(spec, response), started)
    except Exception as e:
        counter(f"analysis.{spec.kind}.fallback")
        logger.error("%s reply could not be turned into a result: %s", spec.kind, e)
        return Fallback(build_result(spec, context, error_reply(spec, e), started), e)
    counter(f"analysis.{spec.kind}.success")
    return Ok(result)


def make_analyzer(spec: AnalyzerSpec) -> Analyzer:
    async def analyze(context: CodeContext, gateway: CompletionClient) -> AnalyzerOutcome:
        return await run_analyzer(spec, context, gateway)

    analyze.__name__ = f"analyze_{spec.prompt_name}"
    analyze.__doc__ = f"{spec.label} analyzer."
    return analyze


analyze_code_quality = make_analyzer(CODE_QUALITY)
analyze_security = make_analyzer(SECURITY)
analyze_performance = make_analyzer(PERFORMANCE)
analyze_maintainability = make_analyzer(MAINTAINABILITY)
analyze_testing = make_analyzer(TESTING)
analyze_documentation = make_analyzer(DOCUMENTATION)

# Registry in canonical run order
ANALYZERS: dict[str, Analyzer] = {
    "codeQuality": analyze_code_quality,
    "security": analyze_security,
    "performance": analyze_performance,
    "maintainability": analyze_maintainability,
    "testing": analyze_testing,
    "documentation": analyze_documentation,
}
