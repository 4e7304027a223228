"""
Speech segmentation for streamed assistant text.

Two layers:
- evaluate_segment(): pure split decision over the pending buffer
- SpeechSegmenter: token_literal consumer that accumulates literals,
  hands finished segments to an async sink, and flushes the remainder
  when the flush signal arrives

IMPORTANT CONTRACT WITH THE PIPELINE:

- The pipeline fires token_literal(TTS_FLUSH_SIGNAL) once per turn,
  after the last real literal. That is the only end-of-turn marker the
  segmenter relies on.
- Zero-width characters are stripped before text reaches the sink.
- Whitespace-only segments are never emitted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

from invariants import (
    SPEECH_SEGMENT_HARD_CAP_CHARS,
    SPEECH_SENTENCE_BREAK_CHARS,
    TTS_FLUSH_INSTRUCTION,
    TTS_FLUSH_SIGNAL,
)
from observability.logger import log_event


SegmentSink = Callable[[str], Awaitable[None]]


# =============================================================================
# Segment Decision
# =============================================================================

@dataclass(frozen=True)
class SegmentDecision:
    """
    Result of a segmentation evaluation.

    If send is False, all other fields are undefined and must be ignored.
    """
    send: bool
    send_text: str | None = None
    remainder: str | None = None
    forced: bool = False


def evaluate_segment(buffer: str, *, hard_cap: int = SPEECH_SEGMENT_HARD_CAP_CHARS) -> SegmentDecision:
    """
    Decide whether the buffer holds a speakable segment.

    Triggers, in order:
    - A: first sentence boundary (delimiter included in the segment)
    - B: hard cap reached; split at the last whitespace before the cap,
         or mid-word when there is none (forced=True)
    """
    if not buffer.strip():
        return SegmentDecision(send=False)

    boundary = _first_boundary(buffer)
    if boundary is not None:
        head, tail = buffer[:boundary], buffer[boundary:]
        if head.strip():
            return SegmentDecision(send=True, send_text=head.strip(), remainder=tail)

    if len(buffer) >= hard_cap:
        return _split_at_cap(buffer, hard_cap)

    return SegmentDecision(send=False)


def _first_boundary(buffer: str) -> int | None:
    positions = [buffer.find(ch) for ch in SPEECH_SENTENCE_BREAK_CHARS]
    found = [p for p in positions if p != -1]
    return min(found) + 1 if found else None


def _split_at_cap(buffer: str, hard_cap: int) -> SegmentDecision:
    region = buffer[:hard_cap]
    cut = max(region.rfind(" "), region.rfind("\t"))

    if cut > 0 and region[:cut].strip():
        return SegmentDecision(send=True, send_text=region[:cut].strip(), remainder=buffer[cut + 1:])

    return SegmentDecision(send=True, send_text=region.strip(), remainder=buffer[hard_cap:], forced=True)


# =============================================================================
# Consumer
# =============================================================================

class SpeechSegmenter:
    """
    Stateful token_literal consumer.

    Register with:
        hooks.on_token_literal(segmenter.on_token_literal, persistent=True)
    """

    def __init__(self, sink: SegmentSink, *, hard_cap: int = SPEECH_SEGMENT_HARD_CAP_CHARS) -> None:
        self._sink = sink
        self._hard_cap = hard_cap
        self._buffer = ""
        self.segments_sent = 0

    @property
    def pending(self) -> str:
        return self._buffer

    async def on_token_literal(self, literal: str) -> None:
        if literal == TTS_FLUSH_SIGNAL:
            await self.flush()
            return

        self._buffer += literal.replace(TTS_FLUSH_INSTRUCTION, "")

        while True:
            decision = evaluate_segment(self._buffer, hard_cap=self._hard_cap)
            if not decision.send:
                return
            self._buffer = decision.remainder or ""
            await self._emit(decision.send_text or "", forced=decision.forced)

    async def flush(self) -> None:
        """Emit whatever is buffered, then reset."""
        text, self._buffer = self._buffer.strip(), ""
        if text:
            await self._emit(text, forced=False)

    async def _emit(self, text: str, *, forced: bool) -> None:
        self.segments_sent += 1
        log_event({
            "event_type": "speech_segment",
            "chars": len(text),
            "forced": forced,
        }, level="DEBUG")
        await self._sink(text)
