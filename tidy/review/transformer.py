"""Transform analyzer results into the editor's review view-model."""

from __future__ import annotations

from collections.abc import Sequence

from tidy.analysis.types import AnalysisResult, Issue
from tidy.review.mock import generate_mock_response
from tidy.review.models import (
    ChangeItem,
    FileWalkthrough,
    ReviewResponse,
    SuggestionItem,
    WalkthroughFile,
    WalkthroughItem,
)

ITEMS_PER_ANALYZER = 2

# bucket -> (source analyzer, placeholder title, placeholder description, placeholder diff)
WALKTHROUGH_BUCKETS = {
    "code_quality": (
        "codeQuality",
        "Code Quality Check",
        "Basic code quality analysis completed",
        "// Code quality analysis completed",
    ),
    "type_safety": (
        "maintainability",
        "Maintainability Check",
        "Code maintainability analysis completed",
        "// Maintainability analysis completed",
    ),
    "performance": (
        "performance",
        "Performance Check",
        "Performance analysis completed",
        "// Performance analysis completed",
    ),
    "monitoring": (
        "documentation",
        "Documentation Check",
        "Documentation analysis completed",
        "// Documentation analysis completed",
    ),
}


def _walkthrough_item(issue: Issue, file_path: str) -> WalkthroughItem:
    note = issue.fix if issue.fix else issue.description
    return WalkthroughItem(
        title=issue.title,
        description=issue.description,
        files=[WalkthroughFile(file_path=file_path, diff=f"// {note}")],
    )


def _bucket(
    results: Sequence[AnalysisResult],
    file_path: str,
    source: str,
    title: str,
    description: str,
    diff: str,
) -> list[WalkthroughItem]:
    issues = next((r.issues for r in results if r.type == source), [])
    if issues:
        return [_walkthrough_item(issue, file_path) for issue in issues]
    return [
        WalkthroughItem(
            title=title,
            description=description,
            files=[WalkthroughFile(file_path=file_path, diff=diff)],
        )
    ]


def transform_analysis_results(
    results: Sequence[AnalysisResult],
    file_path: str,
    file_content: str | None = None,
) -> ReviewResponse:
    """
    Build the review panel payload from analyzer results.

    Empty results delegate to generate_mock_response(). Pure function.
    """
    if not results:
        return generate_mock_response(file_path, file_content or "")

    total_issues = sum(len(r.issues) for r in results)
    total_suggestions = sum(len(r.suggestions) for r in results)
    avg_score = round(sum(r.score for r in results) / len(results))
    summary = (
        f"Analysis completed with overall score: {avg_score}/100. "
        f"Found {total_issues} issues and {total_suggestions} suggestions "
        f"across {len(results)} analysis categories."
    )

    changes: list[ChangeItem] = []
    for result in results:
        for issue in result.issues[:ITEMS_PER_ANALYZER]:
            changes.append(
                ChangeItem(
                    file_path=file_path,
                    title=f"[{result.type.upper()}] {issue.title}",
                    description=issue.description,
                    diff=f"// Fix: {issue.fix}" if issue.fix else f"// Issue: {issue.description}",
                )
            )
    if not changes:
        changes.append(
            ChangeItem(
                file_path=file_path,
                title="Code Review Completed",
                description="Basic code analysis completed successfully",
                diff="// No major issues found",
            )
        )

    walkthrough = FileWalkthrough(
        **{
            bucket: _bucket(results, file_path, *placeholder)
            for bucket, placeholder in WALKTHROUGH_BUCKETS.items()
        }
    )

    code_suggestions: list[SuggestionItem] = []
    for result in results:
        for suggestion in result.suggestions[:ITEMS_PER_ANALYZER]:
            code_suggestions.append(
                SuggestionItem(
                    file_path=file_path,
                    title=f"[{result.type.upper()}] {suggestion.title}",
                    description=suggestion.description,
                    impact_level=suggestion.impact,
                    diff=suggestion.code if suggestion.code else f"// {suggestion.explanation}",
                )
            )
    if not code_suggestions:
        code_suggestions.append(
            SuggestionItem(
                file_path=file_path,
                title="Code Review Completed",
                description="Analysis completed successfully with basic checks",
                impact_level="low",
                diff="// Code analysis completed",
            )
        )

    return ReviewResponse(
        summary=summary,
        changes_summary=changes,
        file_walkthrough=walkthrough,
        code_suggestions=code_suggestions,
    )
