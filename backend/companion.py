"""
Composition root.

Responsibilities:
- Build every collaborator from AppConfig exactly once
- Wire the persistent hooks (knowledge injection, idle talk, speech)
- Expose the small surface the outer loop needs (say, receive_external,
  reset_session, aclose)

Non-responsibilities:
- No I/O loop (see run_console.py)
- No business logic of its own
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Sequence

from adapters.llm.base import ModelProvider
from adapters.llm.streaming import OpenAIChatProvider
from adapters.retrieval.base import RetrievalStore
from adapters.retrieval.http_store import KnowledgeDBClient
from config import AppConfig, LLMConfig
from context.conversation import ConversationHistory, KeyValueStore
from context.serialization import Attachment
from errors import ProviderConfigurationError
from observability.logger import log_event, set_min_level
from orchestrator.hooks import HookRegistry
from orchestrator.idle_talk import IdleTalkEngine, ProviderSelection
from orchestrator.knowledge import KnowledgeInjector
from orchestrator.pipeline import SendOptions, StreamingSendPipeline
from orchestrator.speech import SegmentSink, SpeechSegmenter
from orchestrator.talking import TalkingSignal


GROQ_BASE_URL = "https://api.groq.com/openai/v1"


@dataclass
class Companion:
    config: AppConfig
    history: ConversationHistory
    hooks: HookRegistry
    talking: TalkingSignal
    pipeline: StreamingSendPipeline
    idle_talk: IdleTalkEngine
    provider: ModelProvider | None = None
    store: RetrievalStore | None = None
    knowledge: KnowledgeInjector | None = None
    speech: SpeechSegmenter | None = None

    def start(self) -> None:
        """Arm idle talk. Must run inside the event loop."""
        self.idle_talk.initialize()

    def provider_selection(self) -> ProviderSelection | None:
        return select_provider(self.config.llm, self.provider)

    async def say(self, text: str, attachments: Sequence[Attachment] = ()) -> None:
        """Send one user turn. Provider errors propagate."""
        selection = self.provider_selection()
        if selection is None:
            raise ProviderConfigurationError("no LLM provider configured")

        await self.pipeline.send(
            text,
            SendOptions(
                model=selection.model,
                provider=selection.provider,
                provider_config=selection.provider_config,
                attachments=tuple(attachments),
            ),
        )

    def receive_external(self, text: str, *, author: str, source: str) -> None:
        """Record a third-party chat message; it counts as activity."""
        self.history.append_external(text, author=author, source=source)
        self.idle_talk.reset_idle_timer(clear_context=False)

    def reset_session(self) -> None:
        self.pipeline.cleanup_messages()
        self.pipeline.clear_hooks()
        self.idle_talk.reset_idle_timer(clear_context=True)

    async def aclose(self) -> None:
        self.idle_talk.dispose()
        if isinstance(self.store, KnowledgeDBClient):
            await self.store.aclose()


def select_provider(config: LLMConfig, provider: ModelProvider | None) -> ProviderSelection | None:
    if provider is None or not config.model:
        return None
    return ProviderSelection(
        model=config.model,
        provider=provider,
        provider_config={"headers": dict(config.headers)},
    )


def build_provider(config: LLMConfig) -> ModelProvider | None:
    """Provider selected by configuration, or None when no API key is set."""
    if not config.api_key:
        log_event({"event_type": "llm_provider_missing", "provider": config.provider}, level="WARNING")
        return None

    if config.provider.lower() == "groq":
        return OpenAIChatProvider.from_api_key(config.api_key, base_url=config.base_url or GROQ_BASE_URL)

    return OpenAIChatProvider.from_api_key(config.api_key, base_url=config.base_url)


def build_companion(
    config: AppConfig,
    *,
    provider: ModelProvider | None = None,
    store: RetrievalStore | None = None,
    kv_store: KeyValueStore | None = None,
    speech_sink: SegmentSink | None = None,
    rng: random.Random | None = None,
) -> Companion:
    set_min_level(config.log_level)

    if provider is None:
        provider = build_provider(config.llm)
    if store is None and config.knowledge_db.enabled:
        store = KnowledgeDBClient(config.knowledge_db.url)

    history = ConversationHistory(base_prompt=config.persona_prompt, store=kv_store)
    hooks = HookRegistry()
    talking = TalkingSignal()
    pipeline = StreamingSendPipeline(history=history, hooks=hooks, talking=talking)

    knowledge = None
    if store is not None and config.knowledge_db.enabled:
        knowledge = KnowledgeInjector(
            config=config.knowledge_db,
            store=store,
            history=history,
            talking=talking,
        )
        knowledge.install(hooks)

    speech = None
    if speech_sink is not None:
        speech = SpeechSegmenter(speech_sink)
        hooks.on_token_literal(speech.on_token_literal, persistent=True)

    idle_talk = IdleTalkEngine(
        config=config.idle_talk,
        pipeline=pipeline,
        store=store,
        resolve_provider=lambda: select_provider(config.llm, provider),
        talking=talking,
        rng=rng,
    )

    companion = Companion(
        config=config,
        history=history,
        hooks=hooks,
        talking=talking,
        pipeline=pipeline,
        idle_talk=idle_talk,
        provider=provider,
        store=store,
        knowledge=knowledge,
        speech=speech,
    )

    log_event({
        "event_type": "companion_built",
        "env": config.env,
        "provider": provider.name if provider is not None else None,
        "knowledge_db": knowledge is not None,
        "idle_talk": config.idle_talk.enabled,
    })
    return companion
