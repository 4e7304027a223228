"""
Message serialization.

Responsibilities:
- Build user content (plain text or multi-part with image attachments)
- Convert history into provider-ready dicts (assistant slices stripped)
- Convert messages to and from plain dicts for persistence

Non-responsibilities:
- No history storage
- No logging
- No orchestration decisions
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Literal, Sequence

from context.messages import (
    AssistantMessage,
    ErrorMessage,
    Message,
    Slice,
    SystemMessage,
    TextSlice,
    ToolCallResultSlice,
    ToolCallSlice,
    ToolMessage,
    UserMessage,
)


@dataclass(frozen=True)
class Attachment:
    """Binary attachment sent alongside a user turn (base64 payload)."""
    data: str
    mime_type: str
    type: Literal["image"] = "image"


# =============================================================================
# Outgoing user content
# =============================================================================

def build_user_content(
    text: str,
    attachments: Sequence[Attachment] = (),
) -> str | list[dict[str, Any]]:
    """
    Build the content of a user message.

    Output:
    - plain `text` when there is nothing but text
    - otherwise [{"type": "text", ...}, {"type": "image_url", ...}, ...]
      with images encoded as data URIs tagged with their MIME type
    """
    parts: list[dict[str, Any]] = [{"type": "text", "text": text}]

    for attachment in attachments:
        if attachment.type == "image":
            parts.append({
                "type": "image_url",
                "image_url": {
                    "url": f"data:{attachment.mime_type};base64,{attachment.data}",
                },
            })

    return parts if len(parts) > 1 else text


# =============================================================================
# Provider snapshot
# =============================================================================

def serialize_for_provider(messages: Iterable[Message]) -> list[dict[str, Any]]:
    """
    Snapshot history into provider-ready form.

    Rules:
    - Assistant slices are dropped (display-only), tool results are kept
    - Error entries are display-only and skipped
    - Every dict is a fresh copy; later history mutation does not leak in
    """
    out: list[dict[str, Any]] = []
    for msg in messages:
        if isinstance(msg, ErrorMessage):
            continue
        out.append(message_to_dict(msg, include_slices=False))
    return out


# =============================================================================
# Persistence form
# =============================================================================

def message_to_dict(msg: Message, *, include_slices: bool = True) -> dict[str, Any]:
    """Convert a message to a JSON-compatible dict."""
    if isinstance(msg, AssistantMessage):
        d: dict[str, Any] = {
            "role": "assistant",
            "content": msg.content,
            "tool_results": [{"id": r.id, "result": r.result} for r in msg.tool_results],
        }
        if include_slices:
            d["slices"] = [_slice_to_dict(s) for s in msg.slices]
        return d

    if isinstance(msg, UserMessage):
        d = {"role": "user", "content": _copy_content(msg.content)}
        if msg.author is not None:
            d["author"] = msg.author
        if msg.source is not None:
            d["source"] = msg.source
        return d

    if isinstance(msg, ToolMessage):
        return {"role": "tool", "content": msg.content, "tool_call_id": msg.tool_call_id}

    return {"role": msg.role, "content": msg.content}


def message_from_dict(d: dict[str, Any]) -> Message:
    """Inverse of message_to_dict. Raises ValueError on unknown roles."""
    role = d.get("role")

    if role == "system":
        return SystemMessage(content=str(d.get("content", "")))
    if role == "user":
        return UserMessage(
            content=d.get("content", ""),
            author=d.get("author"),
            source=d.get("source"),
        )
    if role == "assistant":
        return AssistantMessage(
            content=str(d.get("content", "")),
            slices=[_slice_from_dict(s) for s in d.get("slices", [])],
            tool_results=[
                ToolCallResultSlice(id=r["id"], result=r.get("result"))
                for r in d.get("tool_results", [])
            ],
        )
    if role == "tool":
        return ToolMessage(content=str(d.get("content", "")), tool_call_id=str(d.get("tool_call_id", "")))
    if role == "error":
        return ErrorMessage(content=str(d.get("content", "")))

    raise ValueError(f"unknown message role: {role!r}")


# =============================================================================
# Helpers
# =============================================================================

def _copy_content(content: str | list[dict[str, Any]]) -> str | list[dict[str, Any]]:
    if isinstance(content, str):
        return content
    return [dict(part) for part in content]


def _slice_to_dict(s: Slice) -> dict[str, Any]:
    if isinstance(s, TextSlice):
        return {"type": "text", "text": s.text}
    if isinstance(s, ToolCallSlice):
        return {"type": "tool-call", "tool_call": dict(s.tool_call)}
    return {"type": "tool-call-result", "id": s.id, "result": s.result}


def _slice_from_dict(d: dict[str, Any]) -> Slice:
    kind = d.get("type")
    if kind == "text":
        return TextSlice(text=str(d.get("text", "")))
    if kind == "tool-call":
        return ToolCallSlice(tool_call=dict(d.get("tool_call", {})))
    if kind == "tool-call-result":
        return ToolCallResultSlice(id=str(d.get("id", "")), result=d.get("result"))
    raise ValueError(f"unknown slice type: {kind!r}")
