"""
Shared "autonomous turn in flight" signal.

One instance is created by the composition root and handed to every
component that must know whether the character is currently talking on
its own (idle talk engine, send pipeline, knowledge injection).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class TalkingSignal:
    active: bool = False
