"""
Model provider stream events.

Rules:
- Events describe facts reported by the model provider.
- Events carry data only (no behavior).
- The send pipeline routes on `event_type`, never on Python type identity.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar


# =============================================================================
# Event Type Enumeration
# =============================================================================

class StreamEventType(str, Enum):
    """Canonical event kinds produced by a model provider stream."""

    TEXT_DELTA = "text-delta"
    TOOL_CALL = "tool-call"
    TOOL_RESULT = "tool-result"
    FINISH = "finish"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class StreamEvent:
    """
    Base stream event.

    event_type is a class-level discriminant fixed by each subclass.
    """

    event_type: ClassVar[StreamEventType]


# =============================================================================
# Concrete Events
# =============================================================================

@dataclass(frozen=True)
class TextDelta(StreamEvent):
    """Incremental assistant text (a delta, never a full snapshot)."""

    event_type: ClassVar[StreamEventType] = StreamEventType.TEXT_DELTA

    text: str


@dataclass(frozen=True)
class ToolCall(StreamEvent):
    """
    The model requested a tool invocation.

    `arguments` is the raw JSON argument string as produced by the model.
    """

    event_type: ClassVar[StreamEventType] = StreamEventType.TOOL_CALL

    tool_call_id: str
    tool_name: str
    arguments: str = "{}"

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.tool_call_id,
            "type": "function",
            "function": {"name": self.tool_name, "arguments": self.arguments},
        }


@dataclass(frozen=True)
class ToolResult(StreamEvent):
    """A tool invocation finished; `result` is its output."""

    event_type: ClassVar[StreamEventType] = StreamEventType.TOOL_RESULT

    tool_call_id: str
    result: Any = None


@dataclass(frozen=True)
class Finish(StreamEvent):
    """Terminal event of a stream. Exactly one per successful stream."""

    event_type: ClassVar[StreamEventType] = StreamEventType.FINISH

    reason: str | None = None
