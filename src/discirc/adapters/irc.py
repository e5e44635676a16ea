"""IRC adapter: pydle client, tenacity-driven reconnects."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import pydle
from loguru import logger
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from discirc.adapters.base import AdapterBase
from discirc.core.constants import Side
from discirc.events import ConnectionReady, MessageReceived, OutboundChunk

if TYPE_CHECKING:
    from discirc.config import Config

# Backoff: exponential 2-60s between connect attempts
_BACKOFF_MIN = 2
_BACKOFF_MAX = 60

_TRANSIENT_ERRORS = (OSError, ConnectionError, asyncio.TimeoutError)


def _irc_key(channel: str) -> str:
    return channel.lower()


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    wait = state.next_action.sleep if state.next_action else 0
    logger.warning(
        "IRC connect failed (attempt {}): {}, retrying in {:.1f}s",
        state.attempt_number,
        exc,
        wait,
    )


def _connect_retry(attempts: int):
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=_BACKOFF_MIN, max=_BACKOFF_MAX),
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        before_sleep=_log_retry,
        reraise=True,
    )


def _client_kwargs(config: Config) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    if config.irc_username:
        kwargs["username"] = config.irc_username
    if config.irc_realname:
        kwargs["realname"] = config.irc_realname
    if config.irc_sasl_username and config.irc_sasl_password:
        kwargs["sasl_username"] = config.irc_sasl_username
        kwargs["sasl_password"] = config.irc_sasl_password
    return kwargs


async def _connect(client: pydle.Client, config: Config) -> None:
    await client.connect(
        hostname=config.irc_server,
        port=config.irc_port,
        password=config.irc_password,
        tls=config.irc_tls,
        tls_verify=config.irc_tls_verify,
    )


class IRCClient(pydle.Client):
    """Pydle client that forwards channel traffic to its adapter."""

    # Reconnects are driven by IRCAdapter, not pydle.
    RECONNECT_ON_ERROR = False

    def __init__(self, adapter: IRCAdapter, nickname: str, **kwargs: Any) -> None:
        super().__init__(nickname, **kwargs)
        self._adapter = adapter
        self.disconnected = asyncio.Event()
        self.pending_joins: set[str] = set()

    async def on_connect(self) -> None:
        """Registration finished; the relay decides which channels to join."""
        await super().on_connect()
        self.disconnected.clear()
        self.pending_joins.clear()
        logger.info("IRC connected as {}", self.nickname)
        self._adapter.handle_ready()

    async def on_join(self, channel: str, user: str) -> None:
        await super().on_join(channel, user)
        if self.is_same_nick(user, self.nickname):
            self.pending_joins.discard(_irc_key(channel))
            logger.info("IRC joined {}", channel)

    async def _on_join_refused(self, message: Any) -> None:
        """ERR_* reply to our JOIN: <me> <channel> :<reason>. The next ensure_joined retries."""
        params = getattr(message, "params", [])
        if len(params) < 2:
            return
        channel = params[1]
        self.pending_joins.discard(_irc_key(channel))
        logger.warning("IRC join {} refused ({}): {}", channel, message.command, params[-1])

    # 403 no such channel, 405 too many channels, 471 full, 473 invite only,
    # 474 banned, 475 bad key, 477 needs registered nick
    on_raw_403 = _on_join_refused
    on_raw_405 = _on_join_refused
    on_raw_471 = _on_join_refused
    on_raw_473 = _on_join_refused
    on_raw_474 = _on_join_refused
    on_raw_475 = _on_join_refused
    on_raw_477 = _on_join_refused

    async def on_channel_message(self, target: str, by: str, message: str) -> None:
        await super().on_channel_message(target, by, message)
        if self.is_same_nick(by, self.nickname):
            return
        self._adapter.handle_message(target, by, message)

    async def on_ctcp_action(self, by: str, target: str, contents: str) -> None:
        """Handle /me action. pydle has no base handler for this CTCP type."""
        if not self.is_channel(target) or self.is_same_nick(by, self.nickname):
            return
        self._adapter.handle_message(target, by, contents, is_action=True)

    async def on_disconnect(self, expected: bool) -> None:
        await super().on_disconnect(expected)
        self.pending_joins.clear()
        if expected:
            logger.info("IRC disconnected")
        else:
            logger.warning("IRC connection lost")
        self.disconnected.set()

    async def wait_disconnected(self) -> None:
        await self.disconnected.wait()


class IRCAdapter(AdapterBase):
    """IRC side of the relay. Channel identifiers are channel names."""

    def __init__(self, config: Config) -> None:
        super().__init__()
        self._config = config
        self._client: IRCClient | None = None
        self._task: asyncio.Task | None = None
        self._stopping = False

    @property
    def side(self) -> Side:
        return "irc"

    def handle_ready(self) -> None:
        self.publish(ConnectionReady(side="irc"))

    def handle_message(self, target: str, source: str, message: str, *, is_action: bool = False) -> None:
        """Translate a channel PRIVMSG (or ACTION) into MessageReceived."""
        if not message:
            return
        evt = MessageReceived(
            side="irc",
            channel=target,
            sender_id=source,
            sender=source,
            content=message,
            is_action=is_action,
        )
        self.publish(evt)

    async def _run_connection(self) -> None:
        """Connect, wait for disconnect, reconnect; give up after repeated failures."""
        client = self._client
        assert client is not None
        connect = _connect_retry(self._config.irc_reconnect_attempts)(_connect)
        try:
            while True:
                client.disconnected.clear()
                await connect(client, self._config)
                await client.wait_disconnected()
                if self._stopping:
                    return
                logger.info("IRC reconnecting to {}", self._config.irc_server)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.fail(f"IRC connection to {self._config.irc_server} failed", exc)

    async def start(self) -> None:
        """Start IRC connection and outbound consumer."""
        self._config.validate_irc()
        self._stopping = False
        self._client = IRCClient(self, self._config.irc_nickname, **_client_kwargs(self._config))
        self._task = asyncio.create_task(self._run_connection())
        self.start_consumer()
        logger.info(
            "IRC connection started: {}:{} (tls={})",
            self._config.irc_server,
            self._config.irc_port,
            self._config.irc_tls,
        )

    async def stop(self) -> None:
        """Stop IRC connection."""
        self._stopping = True
        if self._client and self._client.connected:
            with contextlib.suppress(Exception):
                await self._client.disconnect(expected=True)
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._client = None
        self._task = None
        await super().stop()

    async def deliver(self, chunk: OutboundChunk) -> None:
        client = self._client
        if client is None or not client.connected:
            raise ConnectionError("IRC not connected")
        await client.message(str(chunk.channel), chunk.text)

    async def ensure_joined(self, desired: Iterable[str | int]) -> list[str | int]:
        client = self._client
        if client is None or not client.connected:
            logger.debug("IRC not connected; joins deferred until ready")
            return []

        have = {_irc_key(c) for c in client.channels} | client.pending_joins
        to_join: list[str | int] = []
        for channel in desired:
            key = _irc_key(str(channel))
            if key in have:
                continue
            have.add(key)
            to_join.append(str(channel))

        for channel in to_join:
            client.pending_joins.add(_irc_key(str(channel)))
            await client.join(str(channel))
        if to_join:
            logger.info("IRC joining {}", ", ".join(str(c) for c in to_join))
        return to_join


class ChannelListClient(pydle.Client):
    """One-shot client: register, send LIST, collect replies until 323."""

    RECONNECT_ON_ERROR = False

    def __init__(self, nickname: str, **kwargs: Any) -> None:
        super().__init__(nickname, **kwargs)
        self._channels: list[str] = []
        self.result: asyncio.Future[list[str]] = asyncio.get_running_loop().create_future()

    async def on_connect(self) -> None:
        await super().on_connect()
        await self.rawmsg("LIST")

    async def on_raw_322(self, message: Any) -> None:
        """RPL_LIST: <me> <channel> <visible> :<topic>"""
        params = getattr(message, "params", [])
        if len(params) >= 2:
            self._channels.append(params[1])

    async def on_raw_323(self, message: Any) -> None:
        """RPL_LISTEND"""
        if not self.result.done():
            self.result.set_result(list(self._channels))

    async def on_disconnect(self, expected: bool) -> None:
        await super().on_disconnect(expected)
        if not self.result.done():
            self.result.set_exception(ConnectionError("IRC client stopped before LIST finished"))


async def list_irc_channels(config: Config) -> list[str]:
    """Channels the IRC server advertises via LIST."""
    config.validate_irc()
    client = ChannelListClient(config.irc_nickname, **_client_kwargs(config))
    await _connect_retry(config.irc_reconnect_attempts)(_connect)(client, config)
    try:
        return await client.result
    finally:
        if client.connected:
            await client.disconnect(expected=True)
