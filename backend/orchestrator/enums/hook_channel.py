"""
Hook channel enumeration.

Rules:
- One member per extension point of the send pipeline.
- Declaration order mirrors the order the pipeline reaches each channel
  in a turn; firing order inside a channel is registration order.
"""

from __future__ import annotations

from enum import Enum


class HookChannel(str, Enum):
    """
    Named extension points fired by the streaming send pipeline.

    Payloads:
        BEFORE_COMPOSE / AFTER_COMPOSE / BEFORE_SEND / AFTER_SEND:
            the outgoing message text
        TOKEN_LITERAL:
            one literal span (or the speech flush signal)
        TOKEN_SPECIAL:
            one complete control marker
        STREAM_END:
            no payload
        ASSISTANT_RESPONSE_END:
            the full assistant text of the turn
    """

    BEFORE_COMPOSE = "before_compose"
    AFTER_COMPOSE = "after_compose"
    BEFORE_SEND = "before_send"
    TOKEN_LITERAL = "token_literal"
    TOKEN_SPECIAL = "token_special"
    STREAM_END = "stream_end"
    ASSISTANT_RESPONSE_END = "assistant_response_end"
    AFTER_SEND = "after_send"
