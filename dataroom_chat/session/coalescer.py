"""Coalescing of streamed response chunks into bounded UI updates.

Response deltas can arrive far faster than the UI can redraw. Chunks are
queued and merged, and the merged update is applied at most once per redraw
tick. No chunk is dropped and FIFO order is preserved.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ChunkEvent(BaseModel):
    """One ``response`` frame's worth of data."""

    response: str = ""
    sources: dict[str, Any] = Field(default_factory=dict)
    thread_id: str = ""


def merge_chunks(chunks: Iterable[ChunkEvent]) -> ChunkEvent:
    """Merge chunks in order.

    Text is concatenated, source maps are merged (later keys win) and the
    latest non-empty thread id is kept.
    """
    merged = ChunkEvent()
    for chunk in chunks:
        merged.response += chunk.response
        merged.sources.update(chunk.sources)
        merged.thread_id = chunk.thread_id or merged.thread_id
    return merged


class TickHandle(Protocol):
    def cancel(self) -> None: ...


class RedrawTicker(Protocol):
    """Schedules a callback on the host's next redraw tick."""

    def schedule(self, callback: Callable[[], None]) -> TickHandle: ...


class AsyncioTicker:
    """Redraw tick driven by the running asyncio loop.

    Args:
        interval: Seconds to wait before the tick fires (one frame at 60Hz by default).
    """

    def __init__(self, interval: float = 0.016) -> None:
        self.interval = interval

    def schedule(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(self.interval, callback)


class UpdateCoalescer:
    """Buffers chunk events and applies them at most once per tick.

    ``push`` queues a chunk and, when no cycle is pending or running, schedules
    one on the next tick. A cycle drains the whole queue, merges it into one
    ``ChunkEvent`` and calls ``apply`` once. Chunks pushed while ``apply`` runs
    schedule a further cycle; otherwise the coalescer goes idle.
    """

    def __init__(
        self,
        apply: Callable[[ChunkEvent], None],
        ticker: RedrawTicker | None = None,
    ) -> None:
        self._apply = apply
        self._ticker = ticker or AsyncioTicker()
        self._pending: deque[ChunkEvent] = deque()
        self._handle: TickHandle | None = None
        self._applying = False
        self.cycles = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def is_idle(self) -> bool:
        return self._handle is None and not self._applying and not self._pending

    def push(self, chunk: ChunkEvent) -> None:
        self._pending.append(chunk)
        if self._handle is None and not self._applying:
            self._schedule()

    def _schedule(self) -> None:
        self._handle = self._ticker.schedule(self._on_tick)

    def _on_tick(self) -> None:
        self._handle = None
        self._run_cycle()
        if self._pending and self._handle is None:
            self._schedule()

    def _run_cycle(self) -> None:
        if not self._pending:
            return

        chunks = list(self._pending)
        self._pending.clear()
        merged = merge_chunks(chunks)

        self._applying = True
        try:
            self._apply(merged)
        finally:
            self._applying = False
            self.cycles += 1

        logger.debug(f"Applied {len(chunks)} chunk(s) in one update")

    def flush(self) -> None:
        """Apply everything pending now, without waiting for a tick."""
        self.cancel()
        while self._pending:
            self._run_cycle()

    def cancel(self) -> None:
        """Drop the scheduled tick (pending chunks stay queued)."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
