"""Inline completion endpoint. Never fails: errors yield an empty suggestion list."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from tidy.api.context import ServiceContext, get_context
from tidy.api.models import CompletionRequest
from tidy.completion.service import CompletionResponse, fallback_response
from tidy.llm.gemini import GeminiInitializationError
from tidy.observability.logging import get_logger

router = APIRouter(prefix="/api/completion", tags=["completion"])
logger = get_logger(__name__)


@router.post("", response_model=CompletionResponse, response_model_by_alias=True)
async def complete(
    body: CompletionRequest, ctx: ServiceContext = Depends(get_context)
) -> CompletionResponse:
    try:
        service = ctx.completion
    except GeminiInitializationError as e:
        logger.warning("Completion without a configured model: %s", e)
        return fallback_response(body.code[: body.cursor_position], body.language)

    return await service.complete(body.code, body.cursor_position, body.language, body.user_id)
