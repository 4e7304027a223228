"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- Drop events below the configured minimum level
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Callable, Mapping

from invariants import LOG_LEVELS


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_min_level: str = "DEBUG"


def set_min_level(level: str) -> None:
    """Set the minimum level an event needs to be written."""
    global _min_level
    level = level.upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"unknown log level: {level!r}")
    _min_level = level


def log_event(event: Mapping[str, Any], *, level: str = "INFO") -> None:
    """
    Write a single JSONL event to stdout.

    The caller supplies `event_type` and any structured fields.
    `ts_ms` and `level` are filled in here when missing.

    This function never raises.
    """
    level = level.upper()
    if level not in LOG_LEVELS:
        level = "INFO"
    if LOG_LEVELS.index(level) < LOG_LEVELS.index(_min_level):
        return

    payload: dict[str, Any] = {
        "ts_ms": time.time_ns() // 1_000_000,
        "level": level,
        **event,
    }
    try:
        line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": payload.get("ts_ms"),
            "level": level,
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
