"""
Domain models (Pydantic v2) for the analysis pipeline.

Internal attributes are snake_case; the wire format is the camelCase shape the
editor frontend expects (``filePath``, ``overallScore``...), produced through
aliases. Every model accepts either spelling on input.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from tidy.config import ANALYSIS_BACKOFF_MULTIPLIER, ANALYSIS_MAX_CONCURRENCY, ANALYSIS_RETRY_ATTEMPTS
from tidy.config import ANALYSIS_RETRY_BASE_DELAY, ANALYSIS_TIMEOUT_SECONDS, ANALYZER_ORDER

AnalyzerKind = Literal[
    "codeQuality", "security", "performance", "maintainability", "testing", "documentation"
]
Severity = Literal["low", "medium", "high", "critical"]
Level = Literal["low", "medium", "high"]

_SEVERITY_ALIASES = {"info": "low", "minor": "low", "warning": "medium", "major": "high", "error": "high"}


def clamp_score(value: Any, default: int | None = None) -> int:
    """
    Coerce a model-supplied score into an int within [0, 100].

    Raises:
        ValueError: If value is not numeric and no default is given
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = math.nan
    if math.isnan(number):
        if default is None:
            raise ValueError(f"score must be numeric, got {value!r}")
        number = float(default)
    return int(round(max(0.0, min(100.0, number))))


def _normalize_level(value: Any, allowed: tuple[str, ...], default: str) -> str:
    if not isinstance(value, str):
        return default
    lowered = value.strip().lower()
    lowered = _SEVERITY_ALIASES.get(lowered, lowered)
    if lowered == "critical" and "critical" not in allowed:
        lowered = "high"
    return lowered if lowered in allowed else default


class CamelModel(BaseModel):
    """Base model: camelCase aliases on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Location(CamelModel):
    line: int | None = None
    column: int | None = None


class Issue(CamelModel):
    id: str
    severity: Severity = "medium"
    title: str
    description: str = ""
    location: Location | None = None
    fix: str | None = None
    category: str = "general"
    confidence: float = 0.8

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, v: Any) -> str:
        return _normalize_level(v, ("low", "medium", "high", "critical"), "medium")

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        try:
            number = float(v)
        except (TypeError, ValueError):
            return 0.5
        return 0.5 if math.isnan(number) else max(0.0, min(1.0, number))


class Suggestion(CamelModel):
    id: str
    title: str
    description: str = ""
    impact: Level = "medium"
    effort: Level = "medium"
    location: Location | None = None
    code: str | None = None
    explanation: str = ""

    @field_validator("impact", "effort", mode="before")
    @classmethod
    def _normalize_level(cls, v: Any) -> str:
        return _normalize_level(v, ("low", "medium", "high"), "medium")


class AnalysisMetadata(CamelModel):
    analysis_time: int = 0  # milliseconds
    lines_analyzed: int = 0
    language: str = ""


class AnalysisResult(CamelModel):
    type: AnalyzerKind
    score: int
    issues: list[Issue] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)
    summary: str = ""
    metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)

    @field_validator("score", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> int:
        return clamp_score(v)


class CodeContext(CamelModel):
    """Immutable input to one analysis round."""

    file_path: str
    content: str
    language: str
    framework: str | None = None
    project_structure: str | None = None
    dependencies: list[str] | None = None

    @property
    def lines(self) -> int:
        return len(self.content.split("\n"))


class AnalysisProgress(CamelModel):
    current: int
    total: int
    current_analyzer: str = ""
    status: Literal["running", "completed"] = "running"


class AnalysisConfig(CamelModel):
    """
    Orchestrator configuration.

    ``timeout`` is milliseconds on the wire (the editor sends ms); the
    orchestrator converts to seconds.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=False)

    enabled_analyzers: list[AnalyzerKind] = Field(default_factory=lambda: list(ANALYZER_ORDER))
    timeout_ms: int = Field(default=int(ANALYSIS_TIMEOUT_SECONDS * 1000), alias="timeout", gt=0)
    max_concurrency: int = Field(default=ANALYSIS_MAX_CONCURRENCY, ge=1)
    include_suggestions: bool = True
    retry_attempts: int = Field(default=ANALYSIS_RETRY_ATTEMPTS, ge=0)
    backoff_multiplier: float = Field(default=ANALYSIS_BACKOFF_MULTIPLIER, gt=0)
    retry_base_delay: float = Field(default=ANALYSIS_RETRY_BASE_DELAY, ge=0)
    offline_recovery_seconds: float | None = None

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class AnalysisError(CamelModel):
    analyzer: str
    error: str
    fallback: bool = True


class AnalysisSummary(CamelModel):
    overall_score: int
    total_issues: int
    total_suggestions: int
    analysis_time: int  # milliseconds


class AnalysisRun(CamelModel):
    results: list[AnalysisResult]
    errors: list[AnalysisError] = Field(default_factory=list)
    summary: AnalysisSummary


# ============================================================================
# Analyzer outcomes
# ============================================================================


@dataclass(frozen=True)
class Ok:
    """Analyzer produced a result from a usable model reply."""

    result: AnalysisResult


@dataclass(frozen=True)
class Fallback:
    """Analyzer degraded to a synthetic result; ``error`` says why."""

    result: AnalysisResult
    error: BaseException


AnalyzerOutcome = Ok | Fallback
