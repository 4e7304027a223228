"""
Knowledge injection.

Before each user turn is composed, query the retrieval store with the
user's text and put the best matches into the system message. When
nothing relevant comes back the system message falls back to the bare
persona prompt.

Skipped while an autonomous turn is in flight: synthetic idle-talk
prompts are not user questions.
"""

from __future__ import annotations

from adapters.llm.prompts import format_knowledge_for_prompt
from adapters.retrieval.base import RetrievalStore
from config import KnowledgeDBConfig
from context.conversation import ConversationHistory
from errors import RetrievalError
from observability.logger import log_event
from orchestrator.hooks import HookRegistry, HookToken
from orchestrator.talking import TalkingSignal


class KnowledgeInjector:
    def __init__(
        self,
        *,
        config: KnowledgeDBConfig,
        store: RetrievalStore,
        history: ConversationHistory,
        talking: TalkingSignal,
    ) -> None:
        self._config = config
        self._store = store
        self._history = history
        self._talking = talking
        self._token: HookToken | None = None

    def install(self, hooks: HookRegistry) -> HookToken:
        """Register the persistent before_compose hook (once)."""
        if self._token is None:
            self._token = hooks.on_before_message_composed(self.on_before_compose, persistent=True)
        return self._token

    async def on_before_compose(self, text: str) -> None:
        if self._talking.active:
            log_event({"event_type": "knowledge_skipped", "reason": "autonomous_turn"}, level="DEBUG")
            return
        if not text or not text.strip():
            return

        try:
            response = await self._store.query_similar(
                text,
                limit=self._config.limit,
                threshold=self._config.threshold,
            )
        except RetrievalError as exc:
            log_event({"event_type": "knowledge_query_failed", "error": str(exc)}, level="WARNING")
            return

        self._history.set_knowledge(format_knowledge_for_prompt(response.results))
        log_event({
            "event_type": "knowledge_injected",
            "results": len(response.results),
            "total": response.total,
        })
