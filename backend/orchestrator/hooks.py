"""
Hook registry for the send pipeline.

Responsibilities:
- Keep one ordered callback list per HookChannel
- Fire a channel's callbacks sequentially, in registration order
- Drop transient (non-persistent) registrations on session reset

Rules:
- A callback that raises aborts the rest of that firing; the error
  propagates to whoever fired the channel.
- register() returns a HookToken; unregister(token) removes exactly
  that registration.
"""

from __future__ import annotations

import inspect
import itertools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from orchestrator.enums.hook_channel import HookChannel


HookCallback = Callable[..., Union[Awaitable[None], None]]


@dataclass(frozen=True)
class HookToken:
    """Opaque handle identifying one registration."""
    channel: HookChannel
    seq: int


@dataclass(frozen=True)
class _Registration:
    token: HookToken
    callback: HookCallback
    persistent: bool


class HookRegistry:
    """Ordered (callback, persistent) lists, one per channel."""

    def __init__(self) -> None:
        self._channels: dict[HookChannel, list[_Registration]] = {
            channel: [] for channel in HookChannel
        }
        self._seq = itertools.count(1)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        channel: HookChannel,
        callback: HookCallback,
        *,
        persistent: bool = False,
    ) -> HookToken:
        token = HookToken(channel=channel, seq=next(self._seq))
        self._channels[channel].append(
            _Registration(token=token, callback=callback, persistent=persistent)
        )
        return token

    def unregister(self, token: HookToken) -> bool:
        """Remove one registration. Returns False if it was already gone."""
        entries = self._channels[token.channel]
        for i, entry in enumerate(entries):
            if entry.token == token:
                del entries[i]
                return True
        return False

    def clear_transient(self) -> None:
        """Keep only persistent registrations on every channel."""
        for channel, entries in self._channels.items():
            self._channels[channel] = [e for e in entries if e.persistent]

    def count(self, channel: HookChannel) -> int:
        return len(self._channels[channel])

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------

    async def fire_all(self, channel: HookChannel, *args: Any) -> None:
        """
        Invoke every callback of `channel` in registration order.

        The list is snapshotted first: callbacks registered or removed
        during a firing take effect from the next firing.
        """
        for entry in list(self._channels[channel]):
            result = entry.callback(*args)
            if inspect.isawaitable(result):
                await result

    # ------------------------------------------------------------------
    # Named registration surface
    # ------------------------------------------------------------------

    def on_before_message_composed(self, cb: HookCallback, *, persistent: bool = False) -> HookToken:
        return self.register(HookChannel.BEFORE_COMPOSE, cb, persistent=persistent)

    def on_after_message_composed(self, cb: HookCallback, *, persistent: bool = False) -> HookToken:
        return self.register(HookChannel.AFTER_COMPOSE, cb, persistent=persistent)

    def on_before_send(self, cb: HookCallback, *, persistent: bool = False) -> HookToken:
        return self.register(HookChannel.BEFORE_SEND, cb, persistent=persistent)

    def on_after_send(self, cb: HookCallback, *, persistent: bool = False) -> HookToken:
        return self.register(HookChannel.AFTER_SEND, cb, persistent=persistent)

    def on_token_literal(self, cb: HookCallback, *, persistent: bool = False) -> HookToken:
        return self.register(HookChannel.TOKEN_LITERAL, cb, persistent=persistent)

    def on_token_special(self, cb: HookCallback, *, persistent: bool = False) -> HookToken:
        return self.register(HookChannel.TOKEN_SPECIAL, cb, persistent=persistent)

    def on_stream_end(self, cb: HookCallback, *, persistent: bool = False) -> HookToken:
        return self.register(HookChannel.STREAM_END, cb, persistent=persistent)

    def on_assistant_response_end(self, cb: HookCallback, *, persistent: bool = False) -> HookToken:
        return self.register(HookChannel.ASSISTANT_RESPONSE_END, cb, persistent=persistent)
