"""
Idle-continuation engine.

Makes the character talk on its own when nobody has said anything for a
while: on every idle timeout it either deepens the previous topic or
starts a new one pulled from the retrieval store, then sends the
synthetic prompt through the streaming send pipeline.

Responsibilities:
- Own the single idle timer (arm / cancel / re-arm)
- Decide continuation vs. new topic and build the prompt
- Bound continuation depth
- Flag autonomous turns on the shared TalkingSignal

Non-responsibilities:
- No streaming or parsing (the pipeline does that)
- No history mutation (synthetic prompts are sent with visible=False)

Invariants:
- 0 <= continuation_count <= max_context_continuation
- talking.active is True for exactly the duration of one autonomous turn
- A timer is armed iff the engine is enabled, not disposed and not talking
- _rearm() is the only place that arms the timer
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from adapters.llm.base import ModelProvider
from adapters.llm.prompts import build_continuation_prompt, build_new_topic_prompt
from adapters.retrieval.base import RetrievalStore, Topic
from config import IdleTalkConfig
from context.messages import AssistantMessage
from errors import ProviderConfigurationError, RetrievalError
from invariants import (
    IDLE_TALK_RANDOM_TOPIC_LIMIT,
    IDLE_TALK_RELATED_LIMIT,
    IDLE_TALK_RESPONSE_POLL_MS,
    IDLE_TALK_RESPONSE_WAIT_MS,
)
from observability.logger import log_event
from observability.metrics import timed
from orchestrator.enums.idle_state import IdleTalkState
from orchestrator.hooks import HookToken
from orchestrator.pipeline import SendOptions, StreamingSendPipeline
from orchestrator.talking import TalkingSignal


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class ProviderSelection:
    """The model/provider pair active at the moment a turn starts."""
    model: str
    provider: ModelProvider
    provider_config: Mapping[str, Any] | None = None


ProviderResolver = Callable[[], Optional[ProviderSelection]]


@dataclass
class IdleState:
    last_interaction_ms: int = 0
    last_response: str | None = None
    initial_topic: str | None = None
    continuation_count: int = 0


class IdleTalkEngine:
    """
    Single-timer state machine layered on the hook registry and the
    send pipeline.

    States:
        DISABLED  config.enabled is False; initialize() is a no-op
        IDLE      timer armed, waiting for silence
        TALKING   autonomous turn in flight, timer disarmed
    """

    def __init__(
        self,
        *,
        config: IdleTalkConfig,
        pipeline: StreamingSendPipeline,
        store: RetrievalStore | None,
        resolve_provider: ProviderResolver,
        talking: TalkingSignal,
        rng: random.Random | None = None,
        poll_interval_ms: int = IDLE_TALK_RESPONSE_POLL_MS,
        response_wait_ms: int = IDLE_TALK_RESPONSE_WAIT_MS,
    ) -> None:
        self._config = config
        self._pipeline = pipeline
        self._history = pipeline.history
        self._hooks = pipeline.hooks
        self._store = store
        self._resolve_provider = resolve_provider
        self._talking = talking
        self._rng = rng or random.Random()
        self._poll_interval_ms = poll_interval_ms
        self._response_wait_ms = response_wait_ms

        self._enabled = config.enabled
        self._disposed = False
        self._idle = IdleState(last_interaction_ms=_now_ms())
        self._timer: asyncio.Task[None] | None = None
        self._hook_tokens: list[HookToken] = []

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> IdleTalkState:
        if not self._enabled:
            return IdleTalkState.DISABLED
        if self._talking.active:
            return IdleTalkState.TALKING
        return IdleTalkState.IDLE

    @property
    def idle(self) -> IdleState:
        return self._idle

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Arm the first timer and register the persistent observers."""
        if not self._enabled:
            log_event({"event_type": "idle_talk_disabled"})
            return
        self._disposed = False
        if self._hook_tokens:
            self._rearm()
            return

        log_event({
            "event_type": "idle_talk_initialized",
            "timeout_ms": self._config.timeout_ms,
            "mode": self._config.mode,
            "continue_context": self._config.continue_context,
            "max_context_continuation": self._config.max_context_continuation,
        })

        self._hook_tokens = [
            self._hooks.on_before_message_composed(self._on_before_compose, persistent=True),
            self._hooks.on_assistant_response_end(self._on_assistant_response_end, persistent=True),
        ]
        self._idle.last_interaction_ms = _now_ms()
        self._rearm()

    def dispose(self) -> None:
        """
        Cancel the pending timer and stop arming new ones until the next
        initialize(). A turn already in flight runs to completion but does
        not re-arm. Context and hooks are left in place.
        """
        self._disposed = True
        self._cancel_timer()

    def reset_idle_timer(self, clear_context: bool = True) -> None:
        self._idle.last_interaction_ms = _now_ms()
        if clear_context:
            self._clear_context()
        self._rearm()

    # ------------------------------------------------------------------
    # Timeout handling
    # ------------------------------------------------------------------

    async def handle_idle_timeout(self) -> None:
        """
        Run one autonomous turn.

        Every failure (no topic, no provider, retrieval or provider error)
        is logged and aborts the turn. The timer is re-armed afterwards in
        all cases.
        """
        if not self._enabled or self._disposed or self._talking.active:
            log_event({
                "event_type": "idle_timeout_skipped",
                "enabled": self._enabled,
                "disposed": self._disposed,
                "talking": self._talking.active,
            }, level="DEBUG")
            return

        if self._pipeline.sending:
            # A user turn is streaming. It may fail before its response-end
            # hook runs, so wait out another full period instead.
            log_event({"event_type": "idle_timeout_skipped", "reason": "send_in_progress"}, level="DEBUG")
            self._rearm()
            return

        self._talking.active = True
        self._rearm()  # disarm for the duration of the turn
        try:
            with timed("idle_talk_turn") as extra:
                prompt = await self.build_idle_talk_prompt()
                if prompt is None:
                    extra["outcome"] = "no_topic"
                    log_event({"event_type": "idle_talk_no_prompt"}, level="WARNING")
                    return

                selection = self._require_provider()
                extra["continuation_count"] = self._idle.continuation_count
                extra["outcome"] = await self._submit(prompt, selection)

        except ProviderConfigurationError as exc:
            log_event({"event_type": "idle_talk_no_provider", "error": str(exc)}, level="WARNING")
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "idle_talk_failed",
                "error": f"{type(exc).__name__}: {exc}",
            }, level="ERROR")
        finally:
            self._talking.active = False
            self._rearm()

    async def build_idle_talk_prompt(self) -> str | None:
        """
        Continuation prompt while the topic still has depth left,
        otherwise a new-topic prompt. None when no topic is available.
        """
        idle = self._idle
        max_depth = self._config.max_context_continuation

        if (
            self._config.continue_context
            and idle.last_response
            and idle.continuation_count < max_depth
        ):
            related = await self._related_to(idle.last_response)
            idle.continuation_count += 1
            log_event({
                "event_type": "idle_talk_continuation",
                "continuation_count": idle.continuation_count,
                "max_context_continuation": max_depth,
                "related": len(related),
            })
            return build_continuation_prompt(idle.last_response, related)

        if idle.continuation_count >= max_depth:
            log_event({"event_type": "idle_talk_topic_exhausted", "continuation_count": idle.continuation_count})
            self._clear_context()

        topic = await self._pick_topic()
        if topic is None:
            return None

        idle.initial_topic = topic.content
        idle.continuation_count = 0
        log_event({
            "event_type": "idle_talk_new_topic",
            "author": topic.author,
            "preview": topic.content[:50],
        })
        return build_new_topic_prompt(topic)

    # ------------------------------------------------------------------
    # Hook callbacks
    # ------------------------------------------------------------------

    def _on_before_compose(self, _text: str) -> None:
        if self._talking.active:
            return
        self._clear_context()
        log_event({"event_type": "idle_talk_context_cleared", "reason": "user_input"}, level="DEBUG")

    def _on_assistant_response_end(self, full_text: str) -> None:
        self._idle.last_response = full_text
        self.reset_idle_timer(clear_context=False)

    # ------------------------------------------------------------------
    # Turn submission
    # ------------------------------------------------------------------

    async def _submit(self, prompt: str, selection: ProviderSelection) -> str:
        initial_length = len(self._history)

        await self._pipeline.send(
            prompt,
            SendOptions(
                model=selection.model,
                provider=selection.provider,
                provider_config=selection.provider_config,
                visible=False,
            ),
        )

        if await self._wait_for_response(initial_length):
            return "responded"

        log_event({
            "event_type": "idle_talk_response_timeout",
            "waited_ms": self._response_wait_ms,
        }, level="WARNING")
        return "timeout"

    async def _wait_for_response(self, initial_length: int) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._response_wait_ms / 1000.0

        while True:
            if any(isinstance(m, AssistantMessage) for m in self._history.since(initial_length)):
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self._poll_interval_ms / 1000.0)

    def _require_provider(self) -> ProviderSelection:
        selection = self._resolve_provider()
        if selection is None or not selection.model:
            raise ProviderConfigurationError("no active model/provider for idle talk")
        return selection

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def _pick_topic(self) -> Topic | None:
        if self._store is None:
            log_event({"event_type": "idle_talk_no_store"}, level="WARNING")
            return None

        try:
            topics = await self._store.get_random_topics(IDLE_TALK_RANDOM_TOPIC_LIMIT)
        except RetrievalError as exc:
            log_event({"event_type": "idle_talk_topic_fetch_failed", "error": str(exc)}, level="ERROR")
            return None

        if not topics:
            return None
        if self._config.mode == "sequential":
            return topics[0]
        return self._rng.choice(topics)

    async def _related_to(self, text: str) -> list[Topic]:
        if self._store is None:
            return []
        try:
            response = await self._store.query_similar(
                text,
                limit=IDLE_TALK_RELATED_LIMIT,
                threshold=self._config.min_similarity,
            )
        except RetrievalError as exc:
            log_event({"event_type": "idle_talk_related_fetch_failed", "error": str(exc)}, level="WARNING")
            return []
        return list(response.results[:IDLE_TALK_RELATED_LIMIT])

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def _clear_context(self) -> None:
        self._idle.last_response = None
        self._idle.initial_topic = None
        self._idle.continuation_count = 0

    def _rearm(self) -> None:
        """Cancel any pending timer, then arm a new one if enabled, live and not talking."""
        self._cancel_timer()
        if not self._enabled or self._disposed or self._talking.active:
            return

        delay_s = self._config.timeout_ms / 1000.0

        async def _timer_task() -> None:
            try:
                await asyncio.sleep(delay_s)
            except asyncio.CancelledError:
                return

            # Fired: detach so the turn's own re-arm does not cancel this task
            if self._timer is asyncio.current_task():
                self._timer = None
            await self.handle_idle_timeout()

        self._timer = asyncio.create_task(_timer_task())

    def _cancel_timer(self) -> None:
        task, self._timer = self._timer, None
        if task is not None and not task.done():
            task.cancel()
