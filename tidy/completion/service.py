"""
Inline completion service.

Asks the model for a short insertion at the cursor, cleans the reply for
inline display and caches it per cursor position. When the provider fails, a
small per-language table covers the most common openings. Never raises to
the caller: failures produce an empty suggestion list.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import Field

from tidy.analysis.types import CamelModel
from tidy.completion.cache import CompletionCache, cursor_key
from tidy.config import COMPLETION_MAX_CHARS, COMPLETION_MAX_TOKENS, COMPLETION_TEMPERATURE
from tidy.llm.gateway import CompletionClient, CompletionOptions
from tidy.llm.prompts import get_prompt_loader
from tidy.observability.logging import get_logger
from tidy.observability.telemetry import counter

logger = get_logger(__name__)

_LEADING_FENCE = re.compile(r"^```[\w]*\n?")
_TRAILING_FENCE = re.compile(r"\n```$")
_LABEL_PREFIX = re.compile(r"^(?:Completion|Answer):\s*", re.IGNORECASE)

JS_LANGUAGES = frozenset({"javascript", "typescript", "typescriptreact", "javascriptreact"})

# (language family, trigger suffix, completion), checked in order
FALLBACK_COMPLETIONS: tuple[tuple[str, str, str], ...] = (
    ("js", "console.log(", ");"),
    ("js", "function ", "() {\n  \n}"),
    ("js", "if (", ") {\n  \n}"),
    ("js", "for (", "let i = 0; i < ; i++) {\n  \n}"),
    ("js", "const ", "= "),
    ("js", "let ", "= "),
    ("js", "var ", "= "),
    ("python", "print(", ")"),
    ("python", "def ", "():\n    pass"),
    ("python", "if ", ":\n    pass"),
    ("python", "for ", "in :\n    pass"),
)


class CompletionItem(CamelModel):
    insert_text: str
    kind: Literal["text"] = "text"
    detail: str = "AI completion"


class CompletionResponse(CamelModel):
    suggestions: list[CompletionItem] = Field(default_factory=list)
    is_incomplete: bool = False

    @classmethod
    def from_text(cls, completion: str | None) -> CompletionResponse:
        if not completion:
            return cls()
        return cls(suggestions=[CompletionItem(insert_text=completion)])


def clean_completion(text: str, max_chars: int = COMPLETION_MAX_CHARS) -> str:
    """Strip fences and label prefixes, then cap the length for inline display."""
    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    cleaned = _LABEL_PREFIX.sub("", cleaned)
    return cleaned[:max_chars]


def _ends_with_trigger(text: str, trigger: str) -> bool:
    keyword = trigger.rstrip()
    if keyword == trigger:
        return text.endswith(trigger)
    # Keyword triggers ("const ") lose their space to strip(); match the whole word
    return re.search(rf"(?:^|\W){re.escape(keyword)}$", text) is not None


def fallback_completion(code_before_cursor: str, language: str) -> str | None:
    """Canned completion for common openings, or None."""
    if language in JS_LANGUAGES:
        family = "js"
    elif language == "python":
        family = "python"
    else:
        return None

    trimmed = code_before_cursor.strip()
    for lang, trigger, completion in FALLBACK_COMPLETIONS:
        if lang == family and _ends_with_trigger(trimmed, trigger):
            return completion
    return None


def fallback_response(code_before_cursor: str, language: str) -> CompletionResponse:
    """Response built from the canned table (empty when nothing matches)."""
    fallback = fallback_completion(code_before_cursor, language)
    if fallback is None:
        return CompletionResponse()
    counter("completion.fallback")
    return CompletionResponse.from_text(clean_completion(fallback))


class CompletionService:
    """
    Args:
        gateway: Completion client (shared with analysis and chat)
        cache: Cursor-keyed cache; a fresh 30 s / 50 entry cache by default
    """

    def __init__(self, gateway: CompletionClient, cache: CompletionCache | None = None) -> None:
        self.gateway = gateway
        self.cache = cache or CompletionCache()

    async def complete(
        self, code: str, cursor_position: int, language: str, user_id: str = "anonymous"
    ) -> CompletionResponse:
        """
        Produce at most one inline suggestion for the cursor position.

        Side Effects:
            - May call the completion gateway
            - Reads and writes the completion cache
        """
        cursor = max(0, min(cursor_position, len(code)))
        before, after = code[:cursor], code[cursor:]
        key = cursor_key(code, cursor)

        cached = self.cache.get(key)
        if cached is not None:
            return CompletionResponse.from_text(cached)

        prompt = get_prompt_loader().render(
            "inline_completion", language=language, before=before, after=after
        )
        try:
            raw = await self.gateway.generate_completion(
                prompt,
                CompletionOptions(
                    temperature=COMPLETION_TEMPERATURE, max_tokens=COMPLETION_MAX_TOKENS
                ),
            )
        except Exception as e:
            logger.warning("Completion failed for user %s, trying fallback: %s", user_id, e)
            counter("completion.provider_error")
            return fallback_response(before, language)

        completion = clean_completion(raw)
        if completion:
            self.cache.put(key, completion)
        logger.debug("Completion generated for user %s (%d chars)", user_id, len(completion))
        return CompletionResponse.from_text(completion)
