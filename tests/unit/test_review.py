"""Unit tests for the review view-model (transformer and offline heuristics)."""

from __future__ import annotations

from tidy.analysis.types import AnalysisResult, Issue, Suggestion
from tidy.review.mock import REMOVED_FOR_PRODUCTION, generate_mock_response
from tidy.review.transformer import transform_analysis_results

REACT_FILE = """import React from 'react';
const App = () => {
  console.log(props);
  return <div />;
};
async function load(data: any) {}
createRoot(document.getElementById('root')).render(<App />);
"""


class TestMockReview:
    def test_plain_file_gets_default_suggestion(self):
        review = generate_mock_response("src/util.ts", "export const x = 1;")
        assert review.summary == "Analysis completed for util.ts. Found 1 suggestions for improvement."
        assert [s.title for s in review.code_suggestions] == ["Code Review Completed"]
        walkthrough = review.file_walkthrough
        for bucket in (walkthrough.code_quality, walkthrough.type_safety, walkthrough.performance):
            assert len(bucket) == 1

    def test_react_heuristics(self):
        review = generate_mock_response("src/main.tsx", REACT_FILE)
        titles = [s.title for s in review.code_suggestions]
        assert titles == [
            "Missing Error Handling",
            "Type Safety Issues",
            "React Best Practices",
            "Security Best Practices",
            "Logging Best Practices",
        ]
        assert len(review.changes_summary) == 2

        by_title = {s.title: s for s in review.code_suggestions}
        assert by_title["Type Safety Issues"].diff == "- data: any\n+ data: unknown"
        assert "data: unknown" in by_title["Type Safety Issues"].fixed_code
        assert REMOVED_FOR_PRODUCTION in by_title["Logging Best Practices"].fixed_code
        assert by_title["Missing Error Handling"].impact_level == "high"

    def test_deterministic(self):
        assert generate_mock_response("a.ts", REACT_FILE) == generate_mock_response("a.ts", REACT_FILE)


class TestTransform:
    def test_empty_results_delegate_to_mock(self):
        assert transform_analysis_results([], "a.ts") == generate_mock_response("a.ts", "")

    def test_results_become_review(self):
        results = [
            AnalysisResult(
                type="security",
                score=60,
                issues=[
                    Issue(id="s1", title="Hardcoded key", description="Key in source", fix="Use env"),
                    Issue(id="s2", title="No CSRF", description="Missing token"),
                    Issue(id="s3", title="Third", description="Dropped from changes"),
                ],
                suggestions=[Suggestion(id="g1", title="Rotate keys", impact="high", code="+ rotate()")],
            ),
            AnalysisResult(type="performance", score=81),
        ]

        review = transform_analysis_results(results, "api.ts")

        assert review.summary == (
            "Analysis completed with overall score: 70/100. "
            "Found 3 issues and 1 suggestions across 2 analysis categories."
        )
        assert [c.title for c in review.changes_summary] == [
            "[SECURITY] Hardcoded key",
            "[SECURITY] No CSRF",
        ]
        assert review.changes_summary[0].diff == "// Fix: Use env"
        assert review.changes_summary[1].diff == "// Issue: Missing token"

        suggestion = review.code_suggestions[0]
        assert suggestion.title == "[SECURITY] Rotate keys"
        assert suggestion.impact_level == "high"
        assert suggestion.diff == "+ rotate()"

        # performance had no issues: placeholder bucket
        assert review.file_walkthrough.performance[0].title == "Performance Check"
        assert review.file_walkthrough.code_quality[0].title == "Code Quality Check"

    def test_wire_shape_is_camel_case(self):
        review = transform_analysis_results([AnalysisResult(type="testing", score=50)], "t.ts")
        payload = review.model_dump(by_alias=True)
        assert set(payload) == {"summary", "changesSummary", "fileWalkthrough", "codeSuggestions"}
        assert set(payload["fileWalkthrough"]) == {"codeQuality", "typeSafety", "performance", "monitoring"}
        assert payload["codeSuggestions"][0]["impactLevel"] == "low"
