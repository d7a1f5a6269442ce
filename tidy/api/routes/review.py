"""Review endpoint: reshape analysis results into the editor's review panel model."""

from __future__ import annotations

from fastapi import APIRouter

from tidy.api.models import ReviewRequest
from tidy.review.models import ReviewResponse
from tidy.review.transformer import transform_analysis_results

router = APIRouter(prefix="/api/review", tags=["review"])


@router.post("", response_model=ReviewResponse, response_model_by_alias=True)
def review(body: ReviewRequest) -> ReviewResponse:
    return transform_analysis_results(body.results, body.file_path, body.file_content)
