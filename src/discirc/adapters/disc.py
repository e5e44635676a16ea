"""Discord adapter: discord.py client, one send per chunk."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import discord
from discord import AllowedMentions, Intents, Message
from loguru import logger

from discirc.adapters.base import AdapterBase
from discirc.core.constants import Side
from discirc.core.errors import BridgeConfigurationError
from discirc.events import ConnectionReady, MembershipChanged, MessageReceived, OutboundChunk

if TYPE_CHECKING:
    from discirc.config import Config


def _display_name(user: Any) -> str:
    return getattr(user, "display_name", None) or user.name


def _require_token(config: Config) -> str:
    token = config.discord_token
    if not token:
        raise BridgeConfigurationError(
            "Discord token missing (set DISCORD_TOKEN or discord.token)",
            code="missing_discord_token",
        )
    return token


class DiscordAdapter(AdapterBase):
    """Discord side of the relay. Channel and user identifiers are snowflakes (int)."""

    def __init__(self, config: Config) -> None:
        super().__init__()
        self._config = config
        self._client: discord.Client | None = None
        self._task: asyncio.Task | None = None
        self._self_id: int | None = None
        self._stopping = False

    @property
    def side(self) -> Side:
        return "discord"

    def _build_client(self) -> discord.Client:
        intents = Intents.default()
        intents.message_content = True
        intents.guilds = True
        intents.members = True

        client = discord.Client(intents=intents, allowed_mentions=AllowedMentions.none())

        @client.event
        async def on_ready() -> None:
            logger.info("Discord bot ready: {}", client.user)
            self.handle_ready(client.user.id if client.user else None)

        @client.event
        async def on_message(message: Message) -> None:
            self.handle_message(message)

        @client.event
        async def on_member_join(member: discord.Member) -> None:
            self.handle_identity(member)

        @client.event
        async def on_member_update(before: discord.Member, after: discord.Member) -> None:
            if _display_name(before) != _display_name(after):
                self.handle_identity(after)

        @client.event
        async def on_user_update(before: discord.User, after: discord.User) -> None:
            if before.name != after.name:
                self.handle_identity(after)

        return client

    def handle_ready(self, self_id: int | None) -> None:
        self._self_id = self_id
        self.publish(ConnectionReady(side="discord"))

    def handle_identity(self, user: Any) -> None:
        self.publish(MembershipChanged(side="discord", user_id=user.id, name=_display_name(user)))

    def handle_message(self, message: Any) -> None:
        """Emit one MessageReceived for the body and one per attachment."""
        author = message.author
        if self._self_id is not None and author.id == self._self_id:
            return

        channel_id = message.channel.id
        sender = _display_name(author)
        mentions = {user.id: _display_name(user) for user in message.mentions}

        content = message.content or ""
        if content.strip():
            evt = MessageReceived(
                side="discord",
                channel=channel_id,
                sender_id=author.id,
                sender=sender,
                content=content,
                mentions=mentions,
            )
            self.publish(evt)

        for attachment in message.attachments:
            evt = MessageReceived(
                side="discord",
                channel=channel_id,
                sender_id=author.id,
                sender=sender,
                content=attachment.url,
                is_attachment=True,
            )
            self.publish(evt)

    async def _run_client(self, token: str) -> None:
        """Run the gateway connection; discord.py reconnects on its own."""
        client = self._client
        assert client is not None
        try:
            await client.start(token)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.fail("Discord client stopped", exc)
            return
        if not self._stopping:
            self.fail("Discord client exited")

    async def start(self) -> None:
        """Start Discord client and outbound consumer."""
        token = _require_token(self._config)
        self._stopping = False
        self._client = self._build_client()
        self._task = asyncio.create_task(self._run_client(token))
        self.start_consumer()
        logger.info("Discord client started")

    async def stop(self) -> None:
        """Stop Discord client and consumer."""
        self._stopping = True
        if self._client:
            with contextlib.suppress(Exception):
                await self._client.close()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._client = None
        self._task = None
        await super().stop()

    async def _channel(self, channel_id: int) -> Any:
        client = self._client
        if client is None:
            raise ConnectionError("Discord not connected")
        channel = client.get_channel(channel_id)
        if channel is None:
            channel = await client.fetch_channel(channel_id)
        return channel

    async def deliver(self, chunk: OutboundChunk) -> None:
        channel = await self._channel(int(chunk.channel))
        if not isinstance(channel, discord.abc.Messageable):
            raise TypeError(f"Discord channel {chunk.channel} cannot receive messages")
        await channel.send(chunk.text, allowed_mentions=AllowedMentions.none())

    async def ensure_joined(self, desired: Iterable[str | int]) -> list[str | int]:
        """Bots see every channel their guilds grant; there is nothing to join.

        Reports bound channels the bot cannot see.
        """
        client = self._client
        if client is None or not client.is_ready():
            return []
        for channel_id in desired:
            if client.get_channel(int(channel_id)) is None:
                logger.warning("Discord channel {} is bound but not visible to the bot", channel_id)
        return []


class _ChannelListClient(discord.Client):
    """Collects guild text channels on ready, then closes."""

    def __init__(self) -> None:
        intents = Intents.default()
        intents.guilds = True
        super().__init__(intents=intents)
        self.result: asyncio.Future[dict[str, list[tuple[str, int]]]] = asyncio.get_running_loop().create_future()

    async def on_ready(self) -> None:
        listing = {
            guild.name: [(channel.name, channel.id) for channel in guild.text_channels] for guild in self.guilds
        }
        if not self.result.done():
            self.result.set_result(listing)
        await self.close()


async def list_discord_channels(config: Config) -> dict[str, list[tuple[str, int]]]:
    """Guild name -> [(channel name, channel id)] for every text channel the bot can see."""
    token = _require_token(config)
    client = _ChannelListClient()
    task = asyncio.create_task(client.start(token))
    try:
        await asyncio.wait({task, client.result}, return_when=asyncio.FIRST_COMPLETED)
        if client.result.done():
            return client.result.result()
        # start() finished first: login failed or the gateway closed.
        task.result()
        raise ConnectionError("Discord client stopped before listing channels")
    finally:
        if not client.is_closed():
            await client.close()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task
