"""
Chat endpoints: conversational replies, stored sessions and issue fixes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from tidy.api.context import ServiceContext, get_context
from tidy.api.models import ChatReply, ChatRequest, FixRequest
from tidy.chat.assistant import ChatAssistant, ChatMessage, generate_reply_suggestions
from tidy.chat.patching import FixResult
from tidy.observability.logging import get_logger

router = APIRouter(prefix="/api/chat", tags=["chat"])
logger = get_logger(__name__)


def _assistant_for(body: ChatRequest, ctx: ServiceContext) -> ChatAssistant:
    """Assistant seeded with the request context and every turn but the last."""
    assistant = ChatAssistant(ctx.gateway, body.context)
    for index, turn in enumerate(body.messages[:-1]):
        assistant.add_message(ChatMessage(id=str(index), role=turn.role, content=turn.content))
    return assistant


@router.post("", response_model=ChatReply, response_model_by_alias=True)
async def chat(body: ChatRequest, ctx: ServiceContext = Depends(get_context)) -> ChatReply:
    """
    Reply to the last message of the conversation.

    Side Effects:
        - Calls the completion gateway
        - Writes chat/<userId>/sessions/<sessionId> when a sessionId is given
    """
    assistant = _assistant_for(body, ctx)
    logger.info("Processing chat request for user %s", body.user_id)

    reply = await assistant.generate_response(body.messages[-1].content)
    suggestions = generate_reply_suggestions(reply)

    if body.session_id:
        ctx.chat_sessions.save(
            body.user_id,
            body.session_id,
            {
                "messages": [
                    *(m.model_dump(by_alias=True) for m in body.messages),
                    {"role": "assistant", "content": reply},
                ],
                "context": body.context.model_dump(mode="json", by_alias=True)
                if body.context
                else None,
                "lastMessage": datetime.now(timezone.utc).isoformat(),
            },
        )

    return ChatReply(message=reply, suggestions=suggestions)


@router.post("/fix", response_model=FixResult, response_model_by_alias=True)
async def fix_issue(body: FixRequest, ctx: ServiceContext = Depends(get_context)) -> FixResult:
    """Fixed code plus a diff for one reported issue."""
    assistant = ChatAssistant(ctx.gateway)
    return await assistant.generate_fix(
        body.issue, body.code, body.file_path, suggestion_diff=body.suggestion_diff
    )


@router.get("/session/{user_id}/{session_id}")
def get_chat_session(
    user_id: str, session_id: str, ctx: ServiceContext = Depends(get_context)
) -> dict[str, Any]:
    session = ctx.chat_sessions.get(user_id, session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return session


@router.delete("/session/{user_id}/{session_id}")
def delete_chat_session(
    user_id: str, session_id: str, ctx: ServiceContext = Depends(get_context)
) -> dict[str, Any]:
    if not ctx.chat_sessions.delete(user_id, session_id):
        raise HTTPException(status_code=404, detail="Chat session not found")
    return {"success": True}
