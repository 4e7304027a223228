"""
Idle talk engine state enumeration.

Rules:
- Control-plane states only, no behavior.
- Transitions are owned by orchestrator.idle_talk.IdleTalkEngine.
"""

from __future__ import annotations

from enum import Enum


class IdleTalkState(str, Enum):
    """
    IDLE:
        Engine enabled, no autonomous turn in flight, timer armed.

    TALKING:
        An autonomous turn is in flight; the timer is disarmed.

    DISABLED:
        Engine turned off by configuration; no timer is ever armed.
    """

    IDLE = "IDLE"
    TALKING = "TALKING"
    DISABLED = "DISABLED"
