"""Session context — everything one conversation needs, passed explicitly to each handler."""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx

from postai.config import PostAIConfig
from postai.llm import LlmClient, TextCompletion
from postai.models import ChatMessage, PendingRequest
from postai.presenter import ResponsePresenter
from postai.request.builder import RequestBuilder
from postai.runtime.registry import DocumentRegistry
from postai.runtime.store import DocumentStore
from postai.runtime.transport import HttpTransport
from postai.search.engine import EndpointSearchEngine

# Transcript entries passed to the intent classifier as history
HISTORY_WINDOW = 6


@dataclass
class Session:
    """Mutable conversation state plus the collaborators that act on it.

    The pending slot holds at most one request awaiting confirmation.
    """

    config: PostAIConfig
    registry: DocumentRegistry
    store: DocumentStore
    builder: RequestBuilder
    search_engine: EndpointSearchEngine
    transport: HttpTransport
    presenter: ResponsePresenter
    completion: TextCompletion | None = None
    fetch_transport: httpx.AsyncBaseTransport | None = None
    transcript: list[ChatMessage] = field(default_factory=list)
    pending: PendingRequest | None = None
    turn: int = 0

    @classmethod
    def from_config(
        cls,
        config: PostAIConfig,
        completion: TextCompletion | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        use_llm: bool = True,
    ) -> Session:
        """Wire a session from configuration.

        Args:
            config: Loaded configuration.
            completion: Text-completion collaborator; built from config when omitted and use_llm is set.
            http_transport: Optional httpx transport shared by document fetches and request execution.
            use_llm: Set False to run without any text-completion collaborator.

        Returns:
            Ready Session.
        """
        if completion is None and use_llm:
            completion = LlmClient.from_config(config)
        return cls(
            config=config,
            registry=DocumentRegistry(recent_urls_limit=config.recent_urls_limit),
            store=DocumentStore(config.storage_dir),
            builder=RequestBuilder(default_timeout_ms=config.request_timeout_ms),
            search_engine=EndpointSearchEngine(completion, semantic_enabled=config.semantic_search_enabled),
            transport=HttpTransport(transport=http_transport),
            presenter=ResponsePresenter(
                json_preview_chars=config.json_preview_chars,
                table_max_rows=config.table_max_rows,
                cell_width=config.table_cell_width,
            ),
            completion=completion,
            fetch_transport=http_transport,
        )

    @property
    def awaiting_confirmation(self) -> bool:
        return self.pending is not None

    def history_text(self, limit: int = HISTORY_WINDOW) -> str:
        """Recent transcript as `role: content` lines for classifier prompts."""
        return "\n".join(f"{m.role}: {m.content}" for m in self.transcript[-limit:])
