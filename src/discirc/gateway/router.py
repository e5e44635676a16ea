"""Channel router: the live IRC channel <-> Discord channel binding table."""

from __future__ import annotations

import threading
from collections.abc import AsyncIterator, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from loguru import logger

from discirc.core.constants import Side
from discirc.core.errors import BridgeConfigurationError, PipeClosedError
from discirc.gateway.pipe import Pipe

_IRC_CHANNEL_PREFIXES = "#&+!"


def _irc_key(channel: str) -> str:
    return channel.lower()


@dataclass(frozen=True)
class ChannelBinding:
    """One bidirectional relay path: an IRC channel and a Discord channel."""

    irc: str
    discord: int


def _parse_discord_id(value: Any, index: int) -> int:
    if isinstance(value, bool):
        value = None
    try:
        channel_id = int(str(value).strip())
    except (TypeError, ValueError):
        channel_id = 0
    if channel_id <= 0:
        raise BridgeConfigurationError(
            f"bindings[{index}].discord must be a positive channel id",
            code="invalid_discord_channel",
            details={"index": index, "value": value},
        )
    return channel_id


def _parse_irc_channel(value: Any, index: int) -> str:
    channel = value.strip() if isinstance(value, str) else ""
    if not channel or channel[0] not in _IRC_CHANNEL_PREFIXES or " " in channel:
        raise BridgeConfigurationError(
            f"bindings[{index}].irc must be an IRC channel name such as '#general'",
            code="invalid_irc_channel",
            details={"index": index, "value": value},
        )
    return channel


class BindingTable:
    """Immutable, ordered snapshot of bindings with directional lookups."""

    __slots__ = ("_bindings", "_by_discord", "_by_irc")

    def __init__(self, bindings: Iterable[ChannelBinding] = ()) -> None:
        self._bindings: tuple[ChannelBinding, ...] = tuple(bindings)
        by_irc: dict[str, list[int]] = {}
        by_discord: dict[int, list[str]] = {}
        for b in self._bindings:
            targets = by_irc.setdefault(_irc_key(b.irc), [])
            if b.discord not in targets:
                targets.append(b.discord)
            names = by_discord.setdefault(b.discord, [])
            if _irc_key(b.irc) not in (_irc_key(n) for n in names):
                names.append(b.irc)
        self._by_irc = {k: tuple(v) for k, v in by_irc.items()}
        self._by_discord = {k: tuple(v) for k, v in by_discord.items()}

    @classmethod
    def load(cls, source: Mapping[str, Any]) -> BindingTable:
        """Parse the `bindings` list of a config document.

        Raises BridgeConfigurationError on any malformed entry; nothing is
        applied in that case.
        """
        raw = source.get("bindings")
        if raw is None:
            logger.warning("Router: no bindings in config; nothing will be relayed")
            return cls()
        if not isinstance(raw, list):
            raise BridgeConfigurationError(
                "bindings must be a list",
                code="invalid_bindings",
                details={"type": type(raw).__name__},
            )

        bindings: list[ChannelBinding] = []
        for i, item in enumerate(raw):
            if not isinstance(item, Mapping):
                raise BridgeConfigurationError(
                    f"bindings[{i}] must be a mapping with 'irc' and 'discord'",
                    code="invalid_binding_item",
                    details={"index": i},
                )
            bindings.append(
                ChannelBinding(
                    irc=_parse_irc_channel(item.get("irc"), i),
                    discord=_parse_discord_id(item.get("discord"), i),
                )
            )
        return cls(bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __iter__(self):
        return iter(self._bindings)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BindingTable):
            return NotImplemented
        return self._bindings == other._bindings

    def __repr__(self) -> str:
        return f"BindingTable({list(self._bindings)!r})"

    @property
    def bindings(self) -> tuple[ChannelBinding, ...]:
        return self._bindings

    def destinations_for(self, side: Side, channel: str | int) -> tuple[str | int, ...]:
        """Channels on the other side bound to `channel` on `side`. Empty if unbound."""
        if side == "irc":
            if not isinstance(channel, str):
                return ()
            return self._by_irc.get(_irc_key(channel), ())
        try:
            return self._by_discord.get(int(channel), ())
        except (TypeError, ValueError):
            return ()

    def channels_for(self, side: Side) -> tuple[str | int, ...]:
        """Every channel on `side` referenced by at least one binding, in table order."""
        if side == "irc":
            seen: dict[str, str] = {}
            for b in self._bindings:
                seen.setdefault(_irc_key(b.irc), b.irc)
            return tuple(seen.values())
        return tuple(dict.fromkeys(b.discord for b in self._bindings))

    def to_document(self) -> dict[str, list[dict[str, Any]]]:
        """Config-shaped dict, the inverse of `load`."""
        return {"bindings": [{"irc": b.irc, "discord": b.discord} for b in self._bindings]}


class ReloadSubscription:
    """Receives every table swapped in after subscribing.

    Iterate with `async for table in subscription`. `close()` drops the
    receiving end; the router prunes it on the next swap.
    """

    def __init__(self, name: str = "reload") -> None:
        self._pipe: Pipe[BindingTable] = Pipe(name)

    @property
    def closed(self) -> bool:
        return self._pipe.closed

    def deliver(self, table: BindingTable) -> None:
        self._pipe.send(table)

    def close(self) -> None:
        self._pipe.close()

    async def next(self) -> BindingTable:
        return await self._pipe.recv()

    def __aiter__(self) -> AsyncIterator[BindingTable]:
        return self._pipe.__aiter__()


class ChannelRouter:
    """Owns the live BindingTable.

    The table reference is replaced wholesale on swap, so a reader holding
    `router.table` always sees one complete table. Swaps are serialized.
    """

    def __init__(self, table: BindingTable | None = None) -> None:
        self._table = table or BindingTable()
        self._subscriptions: list[ReloadSubscription] = []
        self._write_lock = threading.Lock()

    @property
    def table(self) -> BindingTable:
        return self._table

    def destinations_for(self, side: Side, channel: str | int) -> tuple[str | int, ...]:
        return self._table.destinations_for(side, channel)

    def channels_for(self, side: Side) -> tuple[str | int, ...]:
        return self._table.channels_for(side)

    def load_from_config(self, config: Mapping[str, Any]) -> BindingTable:
        """Parse bindings from a config dict and swap them in.

        Raises BridgeConfigurationError, leaving the current table in force.
        """
        table = BindingTable.load(config)
        self.swap(table)
        return table

    def swap(self, table: BindingTable) -> None:
        """Make `table` current and notify reload subscribers."""
        with self._write_lock:
            self._table = table
            live: list[ReloadSubscription] = []
            for sub in self._subscriptions:
                try:
                    sub.deliver(table)
                except PipeClosedError:
                    continue
                live.append(sub)
            pruned = len(self._subscriptions) - len(live)
            self._subscriptions = live
        logger.info(
            "Router: loaded {} bindings ({} IRC, {} Discord channels){}",
            len(table),
            len(table.channels_for("irc")),
            len(table.channels_for("discord")),
            f", pruned {pruned} subscribers" if pruned else "",
        )

    def subscribe_reload(self) -> ReloadSubscription:
        """Register for every future swap."""
        sub = ReloadSubscription()
        with self._write_lock:
            self._subscriptions.append(sub)
        return sub

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)
