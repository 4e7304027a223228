"""
Timing helpers for observability.

- Durations use monotonic time
- One measurement = one METRIC_TIMER log event
- The `timed()` context manager is the only public entry point,
  so a started timer can never leak
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


@contextmanager
def timed(name: str, **details: Any) -> Iterator[dict[str, Any]]:
    """
    Measure the wrapped block and emit one metric event.

    The yielded dict can be filled with extra details while the block
    runs; it is merged into the emitted event. Exceptions inside the
    block are not suppressed and the metric is still emitted, tagged
    with `failed=True`.

    Usage:
        with timed("send_turn", autonomous=False) as extra:
            ...
            extra["committed"] = True
    """
    extra: dict[str, Any] = {}
    start_ns = time.monotonic_ns()
    failed = False
    try:
        yield extra
    except BaseException:
        failed = True
        raise
    finally:
        log_event({
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": (time.monotonic_ns() - start_ns) // 1_000_000,
            "failed": failed,
            "details": {**details, **extra},
        }, level="DEBUG")
