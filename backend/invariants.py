"""
BEHAVIORAL CONSTANTS
--------------------
Single source of truth for behavioral constants of the conversation core.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Token Parsing
# =============================================================================

# Avoid emitting literals too fast; downstream hooks run once per literal.
MIN_LITERAL_EMIT_LENGTH: Final[int] = 24

SPECIAL_MARKER_OPEN: Final[str] = "<|"
SPECIAL_MARKER_CLOSE: Final[str] = "|>"

# =============================================================================
# Speech Flush Signal
# =============================================================================

# Zero-width space. Doubled, it tells speech consumers to finalize the turn.
TTS_FLUSH_INSTRUCTION: Final[str] = "\u200b"
TTS_FLUSH_SIGNAL: Final[str] = TTS_FLUSH_INSTRUCTION * 2

# =============================================================================
# Speech Segmentation
# =============================================================================

SPEECH_SENTENCE_BREAK_CHARS: Final[tuple[str, ...]] = (
    ".", "!", "?", "\n", "。", "！", "？",
)
SPEECH_SEGMENT_HARD_CAP_CHARS: Final[int] = 200

# =============================================================================
# Conversation History
# =============================================================================

HISTORY_STORAGE_KEY: Final[str] = "chat/messages"

CODE_BLOCK_SYSTEM_PROMPT: Final[str] = (
    "- For any programming code block, always specify the programming "
    "language, eg. ```python ... ```\n"
)
MATH_SYNTAX_SYSTEM_PROMPT: Final[str] = (
    "- For any math equation, use LaTeX format, eg: $ x^3 $, always escape "
    "dollar sign outside math equation\n"
)

# =============================================================================
# Idle Talk
# =============================================================================

IDLE_TALK_DEFAULT_TIMEOUT_MS: Final[int] = 30_000
IDLE_TALK_DEFAULT_MIN_SIMILARITY: Final[float] = 0.6
IDLE_TALK_DEFAULT_MAX_CONTINUATION: Final[int] = 3

IDLE_TALK_RANDOM_TOPIC_LIMIT: Final[int] = 5
IDLE_TALK_RELATED_LIMIT: Final[int] = 3
IDLE_TALK_RELATED_PREVIEW_CHARS: Final[int] = 100

IDLE_TALK_RESPONSE_POLL_MS: Final[int] = 100
IDLE_TALK_RESPONSE_WAIT_MS: Final[int] = 30_000

# =============================================================================
# Knowledge Database
# =============================================================================

KNOWLEDGE_DB_DEFAULT_URL: Final[str] = "http://localhost:3100"
KNOWLEDGE_DB_DEFAULT_LIMIT: Final[int] = 3
KNOWLEDGE_DB_DEFAULT_THRESHOLD: Final[float] = 0.3
KNOWLEDGE_DB_TIMEOUT_S: Final[float] = 10.0

# =============================================================================
# Logging
# =============================================================================

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
