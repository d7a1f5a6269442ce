"""Pydantic request models for the Tidy API.

Response bodies reuse the domain models (AnalysisRun, ReviewResponse,
CompletionResponse, FixResult); only request shapes live here.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, field_validator

from tidy.analysis.types import AnalysisResult, CamelModel
from tidy.chat.assistant import ChatContext, FixIssue
from tidy.config import API_CODE_MAX_CHARS

# =============================================================================
# VALIDATION HELPERS
# =============================================================================

MAX_DICT_SIZE = 100
MAX_STRING_LENGTH = 10_000
MAX_DICT_DEPTH = 5


def validate_dict_structure(
    data: dict[str, Any],
    max_keys: int = MAX_DICT_SIZE,
    max_str_len: int = MAX_STRING_LENGTH,
    max_depth: int = MAX_DICT_DEPTH,
    current_depth: int = 0,
) -> None:
    """
    Bound the size and nesting of a free-form dict (user settings, config).

    Raises:
        ValueError: If validation fails
    """
    if current_depth > max_depth:
        raise ValueError(f"Dict nesting exceeds maximum depth of {max_depth}")

    if len(data) > max_keys:
        raise ValueError(f"Dict has too many keys: {len(data)} > {max_keys}")

    for key, value in data.items():
        if isinstance(key, str) and len(key) > 100:
            raise ValueError(f"Dict key too long: {len(key)} > 100")

        if isinstance(value, str):
            if len(value) > max_str_len:
                raise ValueError(f"String value too long: {len(value)} > {max_str_len}")
        elif isinstance(value, dict):
            validate_dict_structure(value, max_keys, max_str_len, max_depth, current_depth + 1)
        elif isinstance(value, list):
            if len(value) > max_keys:
                raise ValueError(f"List too long: {len(value)} > {max_keys}")
            for item in value:
                if isinstance(item, dict):
                    validate_dict_structure(
                        item, max_keys, max_str_len, max_depth, current_depth + 1
                    )


# =============================================================================
# Analysis
# =============================================================================


class AnalysisRequest(CamelModel):
    code: str = Field(min_length=1, max_length=API_CODE_MAX_CHARS)
    file_path: str = Field(min_length=1)
    language: str = Field(min_length=1)
    framework: str | None = None
    project_structure: str | None = None
    dependencies: list[str] | None = None
    config: dict[str, Any] | None = None
    user_id: str = "anonymous"

    @field_validator("config")
    @classmethod
    def _bounded_config(cls, v: dict[str, Any] | None) -> dict[str, Any] | None:
        if v is not None:
            validate_dict_structure(v)
        return v


class ReviewRequest(CamelModel):
    """Analysis results to reshape into the editor's review view-model."""

    results: list[AnalysisResult] = Field(default_factory=list)
    file_path: str = Field(min_length=1)
    file_content: str | None = Field(default=None, max_length=API_CODE_MAX_CHARS)


# =============================================================================
# Users
# =============================================================================


class UserSettingsUpdate(CamelModel):
    settings: dict[str, Any]

    @field_validator("settings")
    @classmethod
    def _valid_settings(cls, v: dict[str, Any]) -> dict[str, Any]:
        for section in ("experimental", "ai"):
            if section in v and not isinstance(v[section], dict):
                raise ValueError(f"settings.{section} must be an object")
        validate_dict_structure(v)
        return v


# =============================================================================
# Chat
# =============================================================================


class ChatTurn(CamelModel):
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1)


class ChatRequest(CamelModel):
    messages: list[ChatTurn] = Field(min_length=1)
    context: ChatContext | None = None
    user_id: str = "anonymous"
    session_id: str | None = None


class ChatReply(CamelModel):
    message: str
    suggestions: list[str] = Field(default_factory=list)


class FixRequest(CamelModel):
    issue: FixIssue
    code: str = Field(max_length=API_CODE_MAX_CHARS)
    file_path: str = Field(min_length=1)
    suggestion_diff: str | None = None


# =============================================================================
# Completion
# =============================================================================


class CompletionRequest(CamelModel):
    code: str = Field(max_length=API_CODE_MAX_CHARS)
    cursor_position: int = Field(ge=0)
    language: str = Field(min_length=1)
    user_id: str = "anonymous"
