"""
Ordered effect queue.

Dispatches tool-call and tool-call-result records to a single async
handler, one at a time, in enqueue order.

Guarantees:
- A record's handler finishes before the next record's handler starts
- A failing handler is logged and skipped; later records still run
- drain() returns only once every enqueued record has been handled
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Literal, Union

from observability.logger import log_event


@dataclass(frozen=True)
class ToolCallRecord:
    tool_call: dict[str, Any]
    kind: Literal["tool-call"] = "tool-call"


@dataclass(frozen=True)
class ToolCallResultRecord:
    id: str
    result: Any = None
    kind: Literal["tool-call-result"] = "tool-call-result"


EffectRecord = Union[ToolCallRecord, ToolCallResultRecord]
EffectHandler = Callable[[EffectRecord], Awaitable[None]]


class OrderedEffectQueue:
    """
    FIFO of side-effect records with one worker task.

    enqueue() never blocks; the worker is started lazily and exits as
    soon as the queue is empty.
    """

    def __init__(self, handler: EffectHandler, *, name: str = "effects") -> None:
        self._handler = handler
        self._name = name
        self._pending: Deque[EffectRecord] = deque()
        self._worker: asyncio.Task[None] | None = None
        self.handled = 0
        self.failed = 0

    def enqueue(self, record: EffectRecord) -> None:
        self._pending.append(record)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())

    async def drain(self) -> None:
        while self._worker is not None and not self._worker.done():
            await self._worker

    def pending(self) -> int:
        return len(self._pending)

    async def _run(self) -> None:
        while self._pending:
            record = self._pending.popleft()
            try:
                await self._handler(record)
                self.handled += 1
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self.failed += 1
                log_event({
                    "event_type": "effect_handler_failed",
                    "queue": self._name,
                    "record_kind": record.kind,
                    "error": f"{type(exc).__name__}: {exc}",
                }, level="ERROR")
