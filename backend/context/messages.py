"""
Conversation message model.

Roles: system, user, assistant, tool, error.

Assistant messages additionally carry ordered slices (text, tool-call,
tool-call-result) and a list of tool results. Adjacent text slices are
merged as they arrive.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union


# =============================================================================
# Slices
# =============================================================================

@dataclass
class TextSlice:
    text: str
    type: Literal["text"] = "text"


@dataclass
class ToolCallSlice:
    tool_call: dict[str, Any]
    type: Literal["tool-call"] = "tool-call"


@dataclass
class ToolCallResultSlice:
    id: str
    result: Any = None
    type: Literal["tool-call-result"] = "tool-call-result"


Slice = Union[TextSlice, ToolCallSlice, ToolCallResultSlice]


# =============================================================================
# Messages
# =============================================================================

@dataclass
class SystemMessage:
    content: str
    role: Literal["system"] = "system"


@dataclass
class UserMessage:
    """
    User turn.

    content is plain text, or a list of content parts when the turn
    carries attachments. author/source tag messages injected from
    external chat platforms.
    """
    content: str | list[dict[str, Any]]
    author: str | None = None
    source: str | None = None
    role: Literal["user"] = "user"


@dataclass
class AssistantMessage:
    content: str = ""
    slices: list[Slice] = field(default_factory=list)
    tool_results: list[ToolCallResultSlice] = field(default_factory=list)
    role: Literal["assistant"] = "assistant"

    def append_literal(self, literal: str) -> None:
        """Append streamed text, merging into the trailing text slice."""
        self.content += literal

        if self.slices and isinstance(self.slices[-1], TextSlice):
            self.slices[-1].text += literal
            return

        self.slices.append(TextSlice(text=literal))


@dataclass
class ToolMessage:
    content: str
    tool_call_id: str
    role: Literal["tool"] = "tool"


@dataclass
class ErrorMessage:
    """Display-only error entry; never sent to a provider."""
    content: str
    role: Literal["error"] = "error"


Message = Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage, ErrorMessage]
