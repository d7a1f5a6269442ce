"""
Chat assistant - context-aware conversation about the code being edited.

Holds a bounded conversation history and the current editor context (file,
code, latest analysis results). Replies come from the completion gateway;
when the gateway fails a keyword-matched canned reply keeps the chat usable.
``generate_fix`` turns one review issue into fixed code plus a diff.
"""

from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import Field

from tidy.analysis.types import AnalysisResult, CamelModel
from tidy.chat.patching import FixResult, PatchError, apply_patch, generate_simple_diff
from tidy.chat.patterns import apply_pattern_fix
from tidy.config import (
    CHAT_CODE_CONTEXT_CHARS,
    CHAT_HISTORY_LIMIT,
    CHAT_MAX_QUICK_SUGGESTIONS,
    CHAT_MAX_REPLY_SUGGESTIONS,
    CHAT_MAX_TOKENS,
    CHAT_PROMPT_HISTORY,
    CHAT_TEMPERATURE,
)
from tidy.llm.gateway import CompletionClient, CompletionOptions
from tidy.llm.prompts import get_prompt_loader
from tidy.observability.logging import get_logger
from tidy.observability.telemetry import counter

logger = get_logger(__name__)

_CODE_FENCE = re.compile(r"^```[\w+-]*\n([\s\S]*?)\n?```$")

CHAT_OPTIONS = CompletionOptions(temperature=CHAT_TEMPERATURE, max_tokens=CHAT_MAX_TOKENS)

FALLBACK_REPLIES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("explain", "what"),
        "I'd be happy to explain that! Based on your current code, it looks like you're "
        "working on a React/TypeScript project. Could you be more specific about what "
        "you'd like me to explain?",
    ),
    (
        ("fix", "error", "bug"),
        "I can help you fix issues in your code. Have you run the code analysis yet? The "
        "analysis results above might give us clues about what needs to be fixed. What "
        "specific error or issue are you encountering?",
    ),
    (
        ("optimize", "performance", "slow"),
        "Performance optimization is important! Looking at your code structure, there are "
        "several areas we could focus on. Have you run the performance analysis? I'd "
        "recommend checking the analysis results for specific suggestions.",
    ),
    (
        ("test",),
        "Testing is crucial for code quality! I can help you write tests or improve your "
        "testing strategy. What kind of testing are you looking to implement - unit tests, "
        "integration tests, or something else?",
    ),
    (
        ("security", "secure"),
        "Security is paramount in development. The security analysis should have identified "
        "potential vulnerabilities. Let me know what specific security concerns you have, "
        "and I can provide guidance on best practices.",
    ),
)

DEFAULT_REPLY = (
    "I'm here to help you with your code! I can explain concepts, suggest improvements, "
    "help fix bugs, or answer questions about your codebase. What would you like to work "
    "on? Feel free to ask me anything about programming, best practices, or your specific code."
)

# Follow-up chips offered under an assistant reply, keyed on reply wording
REPLY_SUGGESTIONS: tuple[tuple[tuple[str, ...], tuple[str, str]], ...] = (
    (("test", "testing"), ("Add unit tests", "Consider integration tests")),
    (("error", "exception"), ("Add error handling", "Implement proper logging")),
    (("performance", "slow"), ("Profile the code", "Consider optimization techniques")),
    (("security", "vulnerable"), ("Review input validation", "Implement security best practices")),
    (("refactor", "improve"), ("Extract methods", "Improve variable names")),
)


class ChatMessage(CamelModel):
    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    code_suggestion: str | None = None


class ChatContext(CamelModel):
    code: str | None = None
    file_path: str | None = None
    language: str | None = None
    analysis_results: list[AnalysisResult] | None = None
    current_file: str | None = None


class FixIssue(CamelModel):
    title: str
    description: str = ""
    category: str = "general"
    severity: str = "medium"


def fallback_reply(user_message: str) -> str:
    lowered = user_message.lower()
    for keywords, reply in FALLBACK_REPLIES:
        if any(keyword in lowered for keyword in keywords):
            return reply
    return DEFAULT_REPLY


def generate_reply_suggestions(reply: str) -> list[str]:
    """Follow-up prompts derived from an assistant reply (at most 3)."""
    lowered = reply.lower()
    suggestions: list[str] = []
    for keywords, chips in REPLY_SUGGESTIONS:
        if any(keyword in lowered for keyword in keywords):
            suggestions.extend(chips)
    return suggestions[:CHAT_MAX_REPLY_SUGGESTIONS]


def strip_code_fence(text: str) -> str:
    text = text.strip()
    match = _CODE_FENCE.match(text)
    return match.group(1).strip() if match else text


def _message_id(offset: int = 0) -> str:
    return str(int(time.time() * 1000) + offset)


class ChatAssistant:
    """
    Conversation state plus the prompts built from it.

    Args:
        gateway: Completion client used for replies and whole-file fixes
        context: Initial editor context
    """

    def __init__(self, gateway: CompletionClient, context: ChatContext | None = None) -> None:
        self.gateway = gateway
        self._context = context or ChatContext()
        self._history: list[ChatMessage] = []

    # ------------------------------------------------------------------
    # Context and history
    # ------------------------------------------------------------------

    @property
    def context(self) -> ChatContext:
        return self._context

    def set_context(self, **fields: Any) -> ChatContext:
        """Merge fields (snake_case or camelCase) into the current context."""
        updates = ChatContext.model_validate(fields).model_dump(exclude_unset=True)
        merged = {**self._context.model_dump(), **updates}
        self._context = ChatContext.model_validate(merged)
        return self._context

    def add_message(self, message: ChatMessage) -> None:
        self._history.append(message)
        if len(self._history) > CHAT_HISTORY_LIMIT:
            self._history = self._history[-CHAT_HISTORY_LIMIT:]

    def get_conversation_history(self) -> list[ChatMessage]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history = []

    # ------------------------------------------------------------------
    # Replies
    # ------------------------------------------------------------------

    def build_prompt(self, user_message: str) -> str:
        context = self._context
        context_info = ""
        if context.code:
            code = context.code
            if len(code) > CHAT_CODE_CONTEXT_CHARS:
                code = code[:CHAT_CODE_CONTEXT_CHARS] + "..."
            context_info += (
                f"\nCurrent code file: {context.file_path or 'Unknown'}\n"
                f"Language: {context.language or 'Unknown'}\n\n"
                f"Code snippet:\n{code}\n"
            )

        if context.analysis_results:
            lines = "\n".join(
                f"- {r.type}: {len(r.issues)} issues found, score: {r.score}/100"
                for r in context.analysis_results
            )
            context_info += f"\nRecent code analysis results:\n{lines}\n"

        recent = self._history[-CHAT_PROMPT_HISTORY:]
        history_text = ""
        if recent:
            turns = "\n".join(f"{m.role}: {m.content}" for m in recent)
            history_text = f"\nRecent conversation:\n{turns}\n"

        return get_prompt_loader().render(
            "chat_assistant",
            context_info=context_info,
            history_text=history_text,
            user_message=user_message,
        )

    async def generate_response(self, user_message: str) -> str:
        """
        Reply to one user message.

        Side Effects:
            - Appends the user message and the reply to the history
            - Calls the completion gateway
        """
        self.add_message(ChatMessage(id=_message_id(), role="user", content=user_message))
        prompt = self.build_prompt(user_message)
        try:
            reply = await self.gateway.generate_completion(prompt, CHAT_OPTIONS)
        except Exception as e:
            logger.error("Chat response generation failed: %s", e)
            counter("chat.fallback_reply")
            reply = fallback_reply(user_message)

        self.add_message(ChatMessage(id=_message_id(1), role="assistant", content=reply))
        return reply

    def generate_suggestions(self) -> list[str]:
        """Quick prompts for the chat panel, from analysis results and language."""
        suggestions: list[str] = []
        results = self._context.analysis_results
        if results:
            if any(r.issues for r in results):
                suggestions.append("Review analysis issues")
            if any(r.score < 70 for r in results):
                suggestions.append("Focus on high-priority improvements")
            if any(r.type == "testing" and r.score < 80 for r in results):
                suggestions.append("Add more comprehensive tests")
            if any(r.type == "documentation" and r.score < 70 for r in results):
                suggestions.append("Improve code documentation")

        if self._context.language == "typescript":
            suggestions.append("Consider using stricter TypeScript settings")
        elif self._context.language == "javascript":
            suggestions.append("Consider migrating to TypeScript")

        suggestions.extend(["Explain this code to me", "Suggest improvements", "Help me write tests"])
        return suggestions[:CHAT_MAX_QUICK_SUGGESTIONS]

    # ------------------------------------------------------------------
    # Fixes
    # ------------------------------------------------------------------

    async def generate_fix(
        self,
        issue: FixIssue,
        code: str,
        file_path: str,
        suggestion_diff: str | None = None,
    ) -> FixResult:
        """
        Produce fixed code and a diff for one issue.

        Order: deterministic pattern, then the suggestion's own patch, then
        the suggestion diff as-is, then a whole-file model rewrite.

        Side Effects:
            May call the completion gateway (model rewrite step only)
        """
        try:
            pattern = apply_pattern_fix(issue.title, issue.category, code)
            if pattern is not None and pattern.diff.strip():
                counter("chat.fix.pattern")
                return pattern

            if suggestion_diff:
                if not suggestion_diff.strip().startswith("//") and "\n" in suggestion_diff:
                    try:
                        fixed = apply_patch(code, suggestion_diff)
                    except PatchError as e:
                        logger.info("Suggestion diff did not apply: %s", e)
                    else:
                        counter("chat.fix.patch")
                        return FixResult(fixed_code=fixed, diff=generate_simple_diff(code, fixed))
                counter("chat.fix.suggestion_passthrough")
                return FixResult(fixed_code=code, diff=suggestion_diff)

            prompt = get_prompt_loader().render(
                "fix_rewrite",
                title=issue.title,
                description=issue.description,
                category=issue.category,
                severity=issue.severity,
                file_path=file_path,
                code=code,
            )
            fixed = strip_code_fence(await self.gateway.generate_completion(prompt, CHAT_OPTIONS))
            diff = generate_simple_diff(code, fixed)
            if not diff.strip() or fixed == code:
                counter("chat.fix.no_change")
                return FixResult(
                    fixed_code=code,
                    diff=f"// Suggested improvement for: {issue.title}\n// {issue.description}\n{code}",
                )
            counter("chat.fix.model")
            return FixResult(fixed_code=fixed, diff=diff)
        except Exception as e:
            logger.error("Failed to generate fix for %r: %s", issue.title, e)
            counter("chat.fix.failed")
            return FixResult(
                fixed_code=code,
                diff=suggestion_diff or f"// Could not generate fix for: {issue.title}\n{code}",
            )
