"""View-model returned to the editor's review panel."""

from __future__ import annotations

from pydantic import Field

from tidy.analysis.types import CamelModel, Level


class ChangeItem(CamelModel):
    file_path: str
    title: str
    description: str
    diff: str


class WalkthroughFile(CamelModel):
    file_path: str
    diff: str | None = None


class WalkthroughItem(CamelModel):
    title: str
    description: str
    files: list[WalkthroughFile] = Field(default_factory=list)


class FileWalkthrough(CamelModel):
    code_quality: list[WalkthroughItem]
    type_safety: list[WalkthroughItem]
    performance: list[WalkthroughItem]
    monitoring: list[WalkthroughItem]


class SuggestionItem(CamelModel):
    file_path: str
    title: str
    description: str
    impact_level: Level = "medium"
    diff: str
    fixed_code: str | None = None


class ReviewResponse(CamelModel):
    summary: str
    changes_summary: list[ChangeItem]
    file_walkthrough: FileWalkthrough
    code_suggestions: list[SuggestionItem]
