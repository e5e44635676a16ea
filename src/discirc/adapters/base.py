"""Base adapter interface: inbound events, outbound sends, reconciliation, terminal failure."""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections.abc import Iterable

from loguru import logger

from discirc.core.constants import Side
from discirc.core.errors import AdapterTerminatedError, PipeClosedError
from discirc.events import AdapterEvent, OutboundChunk
from discirc.gateway.pipe import Pipe


class AdapterBase(ABC):
    """Boundary around one network's client library.

    Subclasses push AdapterEvents into `inbound` and implement `deliver` for
    a single send. The base class runs the outbound consumer and keeps the
    terminal-failure signal.
    """

    def __init__(self) -> None:
        self.inbound: Pipe[AdapterEvent] = Pipe(f"{self.side} inbound")
        self.outbound: Pipe[OutboundChunk] = Pipe(f"{self.side} outbound")
        self._consumer_task: asyncio.Task | None = None
        self._terminal: asyncio.Future[AdapterTerminatedError] | None = None

    @property
    @abstractmethod
    def side(self) -> Side:
        """Adapter identifier ('irc' or 'discord')."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Connect and begin producing inbound events."""
        ...

    async def stop(self) -> None:
        """Stop the outbound consumer and hang up both pipes."""
        if self._consumer_task:
            self._consumer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer_task
            self._consumer_task = None
        self.inbound.close()
        self.outbound.close()

    @abstractmethod
    async def deliver(self, chunk: OutboundChunk) -> None:
        """Send one chunk. May raise; the consumer logs and moves on."""
        ...

    @abstractmethod
    async def ensure_joined(self, desired: Iterable[str | int]) -> list[str | int]:
        """Join every desired channel not already joined; never leave any.

        Returns the channels a join was issued for.
        """
        ...

    def publish(self, evt: AdapterEvent) -> None:
        """Hand an event to the relay. Dropped with a warning once the relay hung up."""
        try:
            self.inbound.send(evt)
        except PipeClosedError:
            logger.warning("{}: inbound pipe closed; dropping {}", self.side, type(evt).__name__)

    def start_consumer(self) -> None:
        if self._consumer_task is None:
            self._consumer_task = asyncio.create_task(self._consume_outbound())

    async def _consume_outbound(self) -> None:
        """Send queued chunks one at a time, in order."""
        try:
            async for chunk in self.outbound:
                try:
                    await self.deliver(chunk)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.exception("{} send to {} failed: {}", self.side, chunk.channel, exc)
        finally:
            self.outbound.close()

    def _terminal_future(self) -> asyncio.Future[AdapterTerminatedError]:
        if self._terminal is None:
            self._terminal = asyncio.get_running_loop().create_future()
        return self._terminal

    def fail(self, message: str, exc: BaseException | None = None) -> None:
        """Signal terminal failure. Only the first call counts; inbound is closed."""
        fut = self._terminal_future()
        if fut.done():
            return
        err = AdapterTerminatedError(self.side, message, original_error=exc)
        if exc is not None:
            err.__cause__ = exc
        logger.error("{} adapter terminated: {}", self.side, message)
        fut.set_result(err)
        self.inbound.close()

    def terminal_error(self) -> AdapterTerminatedError | None:
        """The terminal failure, if one has been signalled."""
        if self._terminal is not None and self._terminal.done():
            return self._terminal.result()
        return None

    async def terminated(self) -> None:
        """Wait for the terminal failure and raise it."""
        raise await asyncio.shield(self._terminal_future())
