"""
Streaming token parser.

Splits the model's text deltas into two event kinds:
- literal: plain text, buffered until at least `min_literal_emit_length`
  characters are pending (end() flushes any remainder)
- special: a complete control marker `<|...|>`, emitted as soon as its
  closing delimiter arrives

IMPORTANT CONTRACT WITH THE PIPELINE:

- Events are emitted strictly in input order. Pending literal text that
  precedes a marker is flushed before the marker, whatever its length.
- Marker text never appears inside a literal event.
- A trailing partial opening delimiter is held back until the next
  fragment decides whether it starts a marker.
- An unterminated marker at end() is flushed as literal text.
- One instance per turn. There is no reset; build a new parser.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from invariants import (
    MIN_LITERAL_EMIT_LENGTH,
    SPECIAL_MARKER_CLOSE,
    SPECIAL_MARKER_OPEN,
)


TokenSink = Callable[[str], Awaitable[None]]


class TokenParser:
    """Incremental literal / special-marker splitter."""

    def __init__(
        self,
        *,
        on_literal: TokenSink,
        on_special: TokenSink,
        min_literal_emit_length: int = MIN_LITERAL_EMIT_LENGTH,
    ) -> None:
        if min_literal_emit_length < 1:
            raise ValueError("min_literal_emit_length must be >= 1")

        self._on_literal = on_literal
        self._on_special = on_special
        self._min_literal = min_literal_emit_length

        # Unscanned input (may start with an open marker)
        self._buffer = ""
        # Scanned literal text not yet emitted
        self._literal = ""
        self._in_marker = False
        self._ended = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def consume(self, fragment: str) -> None:
        if self._ended:
            raise RuntimeError("TokenParser.consume() called after end()")
        if not fragment:
            return

        self._buffer += fragment
        await self._scan(final=False)

        if len(self._literal) >= self._min_literal:
            await self._flush_literal()

    async def end(self) -> None:
        if self._ended:
            return
        self._ended = True

        await self._scan(final=True)
        await self._flush_literal()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _scan(self, *, final: bool) -> None:
        while self._buffer:
            if self._in_marker:
                close = self._buffer.find(SPECIAL_MARKER_CLOSE, len(SPECIAL_MARKER_OPEN))
                if close == -1:
                    if final:
                        # Unterminated marker: give it back as text
                        self._literal += self._buffer
                        self._buffer = ""
                        self._in_marker = False
                    return

                end = close + len(SPECIAL_MARKER_CLOSE)
                marker = self._buffer[:end]
                self._buffer = self._buffer[end:]
                self._in_marker = False

                await self._flush_literal()
                await self._on_special(marker)
                continue

            start = self._buffer.find(SPECIAL_MARKER_OPEN)
            if start == -1:
                keep = 0 if final else _partial_open_suffix(self._buffer)
                cut = len(self._buffer) - keep
                self._literal += self._buffer[:cut]
                self._buffer = self._buffer[cut:]
                return

            self._literal += self._buffer[:start]
            self._buffer = self._buffer[start:]
            self._in_marker = True

    async def _flush_literal(self) -> None:
        if not self._literal:
            return
        literal, self._literal = self._literal, ""
        await self._on_literal(literal)


def _partial_open_suffix(text: str) -> int:
    """Length of the longest suffix of `text` that is a proper prefix of the open marker."""
    for size in range(min(len(SPECIAL_MARKER_OPEN) - 1, len(text)), 0, -1):
        if SPECIAL_MARKER_OPEN.startswith(text[-size:]):
            return size
    return 0
