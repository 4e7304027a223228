"""OpenAI-compatible streaming model provider."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping

from openai import AsyncOpenAI

from adapters.llm.base import ModelProvider
from observability.logger import log_event
from orchestrator.events import Finish, StreamEvent, TextDelta, ToolCall


# Keys the chat completions API accepts per message; everything else
# (tool_results, author, source) is local bookkeeping.
_ALLOWED_MESSAGE_KEYS = frozenset({"role", "content", "name", "tool_calls", "tool_call_id"})


@dataclass
class _PendingToolCall:
    tool_call_id: str = ""
    name: str = ""
    arguments: str = ""


class OpenAIChatProvider(ModelProvider):
    """
    Streaming provider over `client.chat.completions.create(stream=True)`.

    Design notes:
    - One instance may serve many sequential streams.
    - Tool call fragments are accumulated per index and emitted as
      complete ToolCall events when the choice finishes.
    - The provider does NOT retry, parse markers, or touch history.
    """

    name = "openai"

    def __init__(self, *, client: Any) -> None:
        """
        Args:
            client:
                Vendor client (openai.AsyncOpenAI or a compatible object).
        """
        self._client = client

    @classmethod
    def from_api_key(cls, api_key: str | None, *, base_url: str | None = None) -> OpenAIChatProvider:
        return cls(client=AsyncOpenAI(api_key=api_key, base_url=base_url))

    async def stream(
        self,
        *,
        model: str,
        messages: list[dict[str, Any]],
        headers: Mapping[str, str] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        kwargs: dict[str, Any] = dict(
            model=model,
            messages=[self._to_vendor_message(m) for m in messages],
            stream=True,
        )
        if headers:
            kwargs["extra_headers"] = dict(headers)

        log_event({
            "event_type": "provider_stream_start",
            "provider": self.name,
            "model": model,
            "message_count": len(messages),
        }, level="DEBUG")

        stream = await self._client.chat.completions.create(**kwargs)

        pending: dict[int, _PendingToolCall] = {}
        finish_reason: str | None = None

        async for chunk in stream:
            choice = self._first_choice(chunk)
            if choice is None:
                continue

            delta = getattr(choice, "delta", None)
            text = getattr(delta, "content", None) if delta is not None else None
            if text:
                yield TextDelta(text=text)

            for fragment in (getattr(delta, "tool_calls", None) or []) if delta is not None else []:
                self._accumulate_tool_call(pending, fragment)

            if getattr(choice, "finish_reason", None):
                finish_reason = choice.finish_reason

        for index in sorted(pending):
            call = pending[index]
            yield ToolCall(
                tool_call_id=call.tool_call_id,
                tool_name=call.name,
                arguments=call.arguments or "{}",
            )

        yield Finish(reason=finish_reason)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_vendor_message(message: Mapping[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in message.items() if k in _ALLOWED_MESSAGE_KEYS}

    @staticmethod
    def _first_choice(chunk: Any) -> Any | None:
        try:
            return chunk.choices[0]
        except (AttributeError, IndexError):
            return None

    @staticmethod
    def _accumulate_tool_call(pending: dict[int, _PendingToolCall], fragment: Any) -> None:
        index = getattr(fragment, "index", 0) or 0
        call = pending.setdefault(index, _PendingToolCall())

        if getattr(fragment, "id", None):
            call.tool_call_id = fragment.id

        function = getattr(fragment, "function", None)
        if function is None:
            return
        if getattr(function, "name", None):
            call.name = function.name
        if getattr(function, "arguments", None):
            call.arguments += function.arguments
