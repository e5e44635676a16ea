"""Unbounded FIFO between tasks, with hang-up."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Generic, TypeVar

from discirc.core.errors import PipeClosedError

T = TypeVar("T")

_CLOSED = object()


class Pipe(Generic[T]):
    """Many producers, one consumer.

    `send` never blocks; there is no backpressure. Closing wakes the consumer
    once everything already sent has been read, and makes further sends raise
    PipeClosedError.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Pipe {self.name} {state} pending={self._queue.qsize()}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def send(self, item: T) -> None:
        if self._closed:
            raise PipeClosedError(self.name)
        self._queue.put_nowait(item)

    def close(self) -> None:
        """Hang up. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def recv(self) -> T:
        """Next item; raises PipeClosedError once closed and drained."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for any later reader.
            self._queue.put_nowait(_CLOSED)
            raise PipeClosedError(self.name)
        return item  # type: ignore[return-value]

    async def __aiter__(self) -> AsyncIterator[T]:
        while True:
            try:
                yield await self.recv()
            except PipeClosedError:
                return
