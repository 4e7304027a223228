"""
Streaming send pipeline.

Responsibilities:
- Compose one conversational turn and append it to history
- Drive the model provider stream through the token parser and the
  ordered effect queue
- Commit the finished assistant message
- Fire lifecycle hooks in a fixed order

Non-responsibilities:
- No topic selection or idle timing
- No speech synthesis (consumers subscribe to token_literal)
- No retries

Turn order (never reordered):
    before_compose -> append user message -> after_compose -> before_send
    -> provider stream (token_literal / token_special per parsed token)
    -> commit -> token_literal(flush) -> stream_end -> assistant_response_end
    -> after_send

Invariants:
- At most one turn streams at a time; overlapping send() calls queue
- `sending` is True exactly while a turn is running
- The streaming buffer is reset immediately after commit
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from adapters.llm.base import ModelProvider
from context.conversation import ConversationHistory
from context.messages import AssistantMessage, ToolCallResultSlice, ToolCallSlice, UserMessage
from context.serialization import Attachment, build_user_content, message_to_dict
from invariants import TTS_FLUSH_SIGNAL
from observability.logger import log_event
from observability.metrics import timed
from orchestrator.effect_queue import (
    EffectRecord,
    OrderedEffectQueue,
    ToolCallRecord,
    ToolCallResultRecord,
)
from orchestrator.enums.hook_channel import HookChannel
from orchestrator.events import StreamEventType
from orchestrator.hooks import HookRegistry
from orchestrator.talking import TalkingSignal
from orchestrator.token_parser import TokenParser


@dataclass(frozen=True)
class SendOptions:
    """
    Per-turn provider selection.

    visible=False sends the prompt to the provider without ever adding
    it to history (used for synthetic idle-talk prompts).
    """
    model: str
    provider: ModelProvider
    provider_config: Mapping[str, Any] | None = None
    attachments: Sequence[Attachment] = ()
    visible: bool = True


class StreamingSendPipeline:
    def __init__(
        self,
        *,
        history: ConversationHistory,
        hooks: HookRegistry,
        talking: TalkingSignal | None = None,
    ) -> None:
        self._history = history
        self._hooks = hooks
        self._talking = talking or TalkingSignal()
        self._lock = asyncio.Lock()

        self.sending = False
        self.streaming_message = AssistantMessage()

    @property
    def hooks(self) -> HookRegistry:
        return self._hooks

    @property
    def history(self) -> ConversationHistory:
        return self._history

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(self, text: str, options: SendOptions) -> None:
        """
        Run one turn to completion.

        Empty text without attachments is a silent no-op. Any failure is
        logged and re-raised to the caller.
        """
        if not text and not options.attachments:
            return

        async with self._lock:
            self.sending = True
            try:
                with timed(
                    "send_turn",
                    model=options.model,
                    provider=options.provider.name,
                    autonomous=self._talking.active,
                ) as extra:
                    await self._run_turn(text, options, extra)
            except Exception as exc:
                log_event({
                    "event_type": "send_failed",
                    "model": options.model,
                    "provider": options.provider.name,
                    "error": f"{type(exc).__name__}: {exc}",
                }, level="ERROR")
                raise
            finally:
                self.sending = False

    def cleanup_messages(self) -> None:
        """Drop every message except the system message."""
        self._history.cleanup()

    def clear_hooks(self) -> None:
        """Session reset: keep persistent hooks only."""
        self._hooks.clear_transient()

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def _run_turn(self, text: str, options: SendOptions, extra: dict[str, Any]) -> None:
        await self._hooks.fire_all(HookChannel.BEFORE_COMPOSE, text)

        user_message = UserMessage(content=build_user_content(text, options.attachments))
        if options.visible:
            self._history.append(user_message)

        self.streaming_message = AssistantMessage()
        parser = TokenParser(on_literal=self._on_literal, on_special=self._on_special)
        effects = OrderedEffectQueue(self._on_effect, name="send_effects")

        messages = self._history.snapshot_for_provider()
        if not options.visible:
            messages.append(message_to_dict(user_message, include_slices=False))

        await self._hooks.fire_all(HookChannel.AFTER_COMPOSE, text)
        await self._hooks.fire_all(HookChannel.BEFORE_SEND, text)

        headers = (options.provider_config or {}).get("headers")
        full_text = ""
        finished = False

        async for event in options.provider.stream(
            model=options.model,
            messages=messages,
            headers=headers,
        ):
            kind = event.event_type

            if finished:
                log_event({
                    "event_type": "provider_event_after_finish",
                    "provider": options.provider.name,
                    "stream_event": kind.value,
                }, level="WARNING")
                continue

            if kind is StreamEventType.TOOL_CALL:
                effects.enqueue(ToolCallRecord(tool_call=event.to_payload()))
            elif kind is StreamEventType.TOOL_RESULT:
                effects.enqueue(ToolCallResultRecord(id=event.tool_call_id, result=event.result))
            elif kind is StreamEventType.TEXT_DELTA:
                full_text += event.text
                await parser.consume(event.text)
            elif kind is StreamEventType.FINISH:
                finished = True
                extra["committed"] = await self._finish(parser, effects, full_text)

        if not finished:
            # Stream closed without a finish event: finalize anyway so the
            # buffer is never left half-built.
            log_event({
                "event_type": "provider_stream_missing_finish",
                "provider": options.provider.name,
                "model": options.model,
            }, level="WARNING")
            extra["committed"] = await self._finish(parser, effects, full_text)

        extra["chars"] = len(full_text)
        await self._hooks.fire_all(HookChannel.AFTER_SEND, text)

    async def _finish(
        self,
        parser: TokenParser,
        effects: OrderedEffectQueue,
        full_text: str,
    ) -> bool:
        await parser.end()
        await effects.drain()

        committed = bool(self.streaming_message.slices)
        if committed:
            self._history.append(self.streaming_message)
        self.streaming_message = AssistantMessage()

        await self._hooks.fire_all(HookChannel.TOKEN_LITERAL, TTS_FLUSH_SIGNAL)
        await self._hooks.fire_all(HookChannel.STREAM_END)
        await self._hooks.fire_all(HookChannel.ASSISTANT_RESPONSE_END, full_text)

        log_event({
            "event_type": "assistant_response_end",
            "committed": committed,
            "chars": len(full_text),
        }, level="DEBUG")
        return committed

    # ------------------------------------------------------------------
    # Parser / queue sinks
    # ------------------------------------------------------------------

    async def _on_literal(self, literal: str) -> None:
        self.streaming_message.append_literal(literal)
        await self._hooks.fire_all(HookChannel.TOKEN_LITERAL, literal)

    async def _on_special(self, special: str) -> None:
        await self._hooks.fire_all(HookChannel.TOKEN_SPECIAL, special)

    async def _on_effect(self, record: EffectRecord) -> None:
        if isinstance(record, ToolCallRecord):
            self.streaming_message.slices.append(ToolCallSlice(tool_call=record.tool_call))
        elif isinstance(record, ToolCallResultRecord):
            self.streaming_message.tool_results.append(
                ToolCallResultSlice(id=record.id, result=record.result)
            )
