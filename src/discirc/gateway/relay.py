"""Relay: inbound events from one side -> rendered chunks on the other side's outbound pipe."""

from __future__ import annotations

import asyncio
import contextlib
import enum
from collections.abc import Mapping
from typing import TYPE_CHECKING

from loguru import logger

from discirc.core.constants import (
    DISCORD_MESSAGE_LIMIT,
    IRC_MESSAGE_LIMIT,
    MIN_MESSAGE_LIMIT,
    SIDES,
    SIZE_UNITS,
    Side,
    other_side,
)
from discirc.core.errors import BridgeConfigurationError, BridgeError, PipeClosedError
from discirc.events import (
    AdapterEvent,
    ConnectionReady,
    MembershipChanged,
    MessageReceived,
    OutboundChunk,
)
from discirc.formatting import (
    chunk,
    irc_to_discord,
    render_for_discord,
    render_for_irc,
    resolve_inline_references,
)
from discirc.gateway.router import BindingTable, ChannelRouter, ReloadSubscription
from discirc.identity import MentionCache

if TYPE_CHECKING:
    from discirc.adapters.base import AdapterBase


class RelayState(enum.Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    TERMINATED = "terminated"


def _direction(source: Side) -> str:
    return f"{source}->{other_side(source)}"


class Relay:
    """Bridges the two adapters through the binding table.

    Either direction ending ends both: a dead side leaves nothing to bridge.
    """

    def __init__(
        self,
        router: ChannelRouter,
        irc: AdapterBase,
        discord: AdapterBase,
        mentions: MentionCache,
        *,
        limits: Mapping[str, int] | None = None,
    ) -> None:
        self._router = router
        self._adapters: dict[Side, AdapterBase] = {"irc": irc, "discord": discord}
        self._mentions = mentions
        self._limits: dict[str, int] = {"irc": IRC_MESSAGE_LIMIT, "discord": DISCORD_MESSAGE_LIMIT}
        self._limits.update(limits or {})
        for side, limit in self._limits.items():
            if not isinstance(limit, int) or limit < MIN_MESSAGE_LIMIT:
                raise BridgeConfigurationError(
                    f"{side} message limit must be an integer of at least {MIN_MESSAGE_LIMIT}",
                    code="invalid_message_limit",
                    details={"side": side, "value": limit},
                )
        self._states: dict[str, RelayState] = {_direction(s): RelayState.IDLE for s in SIDES}
        self._tasks: list[asyncio.Task] = []
        self._subscription: ReloadSubscription | None = None
        self._stop_requested = asyncio.Event()

    @property
    def states(self) -> dict[str, RelayState]:
        """State per direction, keyed 'irc->discord' / 'discord->irc'."""
        return dict(self._states)

    def _set_state(self, state: RelayState) -> None:
        for direction in self._states:
            self._states[direction] = state

    # Formatting and fan-out

    def render(self, evt: MessageReceived) -> str:
        """Text of evt as it should appear on the other side, before chunking."""
        if evt.side == "discord":
            text = evt.content
            if not evt.is_attachment:
                text = resolve_inline_references(text, self._mentions, evt.mentions)
            return render_for_irc(evt.sender, text, action=evt.is_action)
        return render_for_discord(evt.sender, irc_to_discord(evt.content), action=evt.is_action)

    def route(self, evt: MessageReceived) -> list[OutboundChunk]:
        """Queue evt on the other side for every bound channel; return what was queued."""
        if evt.side == "discord":
            self._mentions.observe(evt.sender_id, evt.sender)

        destinations = self._router.table.destinations_for(evt.side, evt.channel)
        if not destinations:
            logger.debug("Relay: {} channel {} is unbound; dropped", evt.side, evt.channel)
            return []

        target = other_side(evt.side)
        pieces = chunk(self.render(evt), self._limits[target], SIZE_UNITS[target])
        sink = self._adapters[target].outbound
        queued: list[OutboundChunk] = []
        for destination in destinations:
            for piece in pieces:
                out = OutboundChunk(channel=destination, text=piece)
                sink.send(out)
                queued.append(out)
        logger.debug(
            "Relay: {} {} -> {} {} ({} chunks)",
            evt.side,
            evt.channel,
            target,
            list(destinations),
            len(pieces),
        )
        return queued

    async def handle_event(self, evt: AdapterEvent) -> list[OutboundChunk]:
        if isinstance(evt, MessageReceived):
            return self.route(evt)
        if isinstance(evt, MembershipChanged):
            if evt.side == "discord":
                self._mentions.observe(evt.user_id, evt.name)
            return []
        if isinstance(evt, ConnectionReady):
            adapter = self._adapters[evt.side]
            await adapter.ensure_joined(self._router.channels_for(evt.side))
            return []
        logger.warning("Relay: ignoring unknown event {!r}", evt)
        return []

    async def reconcile(self, table: BindingTable) -> dict[Side, list[str | int]]:
        """Ask both adapters to join whatever `table` needs."""
        joined: dict[Side, list[str | int]] = {}
        for side, adapter in self._adapters.items():
            try:
                joined[side] = await adapter.ensure_joined(table.channels_for(side))
            except Exception as exc:
                logger.exception("Relay: {} reconciliation failed: {}", side, exc)
                joined[side] = []
        return joined

    # Tasks

    async def _pump(self, side: Side) -> None:
        inbound = self._adapters[side].inbound
        async for evt in inbound:
            try:
                await self.handle_event(evt)
            except PipeClosedError:
                raise
            except Exception as exc:
                logger.exception("Relay: failed to handle {} from {}: {}", type(evt).__name__, side, exc)
        raise PipeClosedError(inbound.name)

    async def _watch_reloads(self, subscription: ReloadSubscription) -> None:
        async for table in subscription:
            logger.info("Relay: bindings reloaded; reconciling joins")
            await self.reconcile(table)

    def _terminal_error(self, done: set[asyncio.Task]) -> BaseException | None:
        for adapter in self._adapters.values():
            err = adapter.terminal_error()
            if err is not None:
                return err
        for task in done:
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                return exc
        if self._stop_requested.is_set():
            return None
        return BridgeError("Relay task exited unexpectedly", code="relay_task_exited")

    async def run(self) -> None:
        """Start both adapters and relay until either side or a pipe ends.

        Raises the cause of termination; returns normally only after stop().
        """
        if self._tasks:
            raise RuntimeError("Relay is already running")
        self._subscription = self._router.subscribe_reload()
        error: BaseException | None = None
        try:
            for adapter in self._adapters.values():
                await adapter.start()
            self._set_state(RelayState.STREAMING)
            self._tasks = [
                asyncio.create_task(self._pump("irc"), name="relay-irc-inbound"),
                asyncio.create_task(self._pump("discord"), name="relay-discord-inbound"),
                asyncio.create_task(self._watch_reloads(self._subscription), name="relay-reload"),
                asyncio.create_task(self._adapters["irc"].terminated(), name="irc-terminal"),
                asyncio.create_task(self._adapters["discord"].terminated(), name="discord-terminal"),
                asyncio.create_task(self._stop_requested.wait(), name="relay-stop"),
            ]
            done, _ = await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
            error = self._terminal_error(done)
        finally:
            await self._shutdown()
        if error is not None:
            logger.error("Relay terminated: {}", error)
            raise error

    def stop(self) -> None:
        """Tear the whole relay down; run() returns."""
        self._stop_requested.set()

    async def _shutdown(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._subscription:
            self._subscription.close()
        for side, adapter in self._adapters.items():
            with contextlib.suppress(Exception):
                logger.info("Stopping {} adapter", side)
                await adapter.stop()
        self._set_state(RelayState.TERMINATED)
