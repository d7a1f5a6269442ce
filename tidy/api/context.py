"""
Service container shared by all routes.

One ServiceContext lives on ``app.state.services``. It owns the key-value
store and its repositories, and builds the completion gateway lazily so the
app starts without an API key. Routes get it through ``Depends(get_context)``.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from tidy.analysis.orchestrator import AnalysisOrchestrator
from tidy.completion.service import CompletionService
from tidy.config import GEMINI_API_KEY, GEMINI_MODEL
from tidy.llm.gateway import CompletionClient, CompletionGateway
from tidy.observability.logging import get_logger
from tidy.storage import KeyValueStore
from tidy.storage.history import AnalysisHistory
from tidy.storage.repositories import (
    AnalysisSessionRepository,
    ChatSessionRepository,
    UserRepository,
)

logger = get_logger(__name__)

GatewayFactory = Callable[[str | None], CompletionClient]


def default_gateway_factory(api_key: str | None) -> CompletionClient:
    return CompletionGateway.from_api_key(api_key, GEMINI_MODEL)


class ServiceContext:
    """
    Args:
        api_key: Gemini API key (None leaves LLM routes unavailable)
        gateway_factory: Builds a completion client from a key
        store: Key-value store (a default one over the configured DB path)
    """

    def __init__(
        self,
        api_key: str | None = GEMINI_API_KEY,
        gateway_factory: GatewayFactory = default_gateway_factory,
        store: KeyValueStore | None = None,
    ) -> None:
        self.store = store or KeyValueStore()
        self.users = UserRepository(self.store)
        self.analysis_sessions = AnalysisSessionRepository(self.store)
        self.chat_sessions = ChatSessionRepository(self.store)
        self.history = AnalysisHistory(self.store)

        self._api_key = api_key
        self._gateway_factory = gateway_factory
        self._gateway: CompletionClient | None = None
        self._orchestrator: AnalysisOrchestrator | None = None
        self._completion: CompletionService | None = None

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    @property
    def gateway(self) -> CompletionClient:
        """
        The shared completion client, built on first use.

        Raises:
            GeminiInitializationError: If no API key is configured
        """
        if self._gateway is None:
            self._gateway = self._gateway_factory(self._api_key)
            logger.info("Completion gateway initialized")
        return self._gateway

    @property
    def orchestrator(self) -> AnalysisOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = AnalysisOrchestrator(self.gateway)
        return self._orchestrator

    @property
    def completion(self) -> CompletionService:
        if self._completion is None:
            self._completion = CompletionService(self.gateway)
        return self._completion


def get_context(request: Request) -> ServiceContext:
    return request.app.state.services
