"""Tests for the IRC adapter and its pydle client."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pydle
import pytest

from discirc.adapters.irc import IRCAdapter, IRCClient, _client_kwargs
from discirc.config import Config
from discirc.core.errors import AdapterTerminatedError, BridgeConfigurationError
from discirc.events import ConnectionReady, MessageReceived, OutboundChunk
from tests.mocks import drain


def _config(**irc) -> Config:
    return Config({"irc": {"server": "irc.example.net", **irc}})


def _connected_client(channels=(), pending=()) -> MagicMock:
    client = MagicMock()
    client.connected = True
    client.channels = {c: {} for c in channels}
    client.pending_joins = set(pending)
    client.join = AsyncMock()
    client.message = AsyncMock()
    return client


class TestClientKwargs:
    def test_minimal(self):
        assert _client_kwargs(_config()) == {}

    def test_sasl_needs_both_parts(self, monkeypatch):
        monkeypatch.delenv("IRC_SASL_PASSWORD", raising=False)
        assert "sasl_username" not in _client_kwargs(_config(sasl_username="bot"))
        kwargs = _client_kwargs(_config(sasl_username="bot", sasl_password="pw", realname="Relay"))
        assert kwargs == {"sasl_username": "bot", "sasl_password": "pw", "realname": "Relay"}


class TestIRCAdapterEvents:
    @pytest.mark.asyncio
    async def test_channel_message(self):
        adapter = IRCAdapter(_config())

        adapter.handle_message("#general", "bob", "yo")

        assert await drain(adapter.inbound) == [MessageReceived("irc", "#general", "bob", "bob", "yo")]

    @pytest.mark.asyncio
    async def test_action(self):
        adapter = IRCAdapter(_config())

        adapter.handle_message("#general", "bob", "waves", is_action=True)

        (evt,) = await drain(adapter.inbound)
        assert evt.is_action is True

    @pytest.mark.asyncio
    async def test_empty_message_ignored(self):
        adapter = IRCAdapter(_config())
        adapter.handle_message("#general", "bob", "")
        assert adapter.inbound.qsize() == 0

    @pytest.mark.asyncio
    async def test_ready(self):
        adapter = IRCAdapter(_config())
        adapter.handle_ready()
        assert await drain(adapter.inbound) == [ConnectionReady("irc")]


class TestIRCAdapterOutbound:
    @pytest.mark.asyncio
    async def test_deliver_sends_privmsg(self):
        adapter = IRCAdapter(_config())
        adapter._client = _connected_client()

        await adapter.deliver(OutboundChunk("#general", "alice: hi"))

        adapter._client.message.assert_awaited_once_with("#general", "alice: hi")

    @pytest.mark.asyncio
    async def test_deliver_when_disconnected(self):
        adapter = IRCAdapter(_config())
        with pytest.raises(ConnectionError):
            await adapter.deliver(OutboundChunk("#general", "alice: hi"))


class TestEnsureJoined:
    @pytest.mark.asyncio
    async def test_joins_only_missing(self):
        adapter = IRCAdapter(_config())
        client = adapter._client = _connected_client(channels=["#General"], pending=["#pending"])

        joined = await adapter.ensure_joined(["#general", "#pending", "#new", "#NEW"])

        assert joined == ["#new"]
        client.join.assert_awaited_once_with("#new")
        assert "#new" in client.pending_joins

    @pytest.mark.asyncio
    async def test_second_call_does_not_rejoin(self):
        adapter = IRCAdapter(_config())
        client = adapter._client = _connected_client()

        await adapter.ensure_joined(["#a"])
        again = await adapter.ensure_joined(["#a"])

        assert again == []
        assert client.join.await_count == 1

    @pytest.mark.asyncio
    async def test_not_connected(self):
        adapter = IRCAdapter(_config())
        assert await adapter.ensure_joined(["#a"]) == []


class TestConnectionLoop:
    @pytest.mark.asyncio
    async def test_start_requires_server(self):
        adapter = IRCAdapter(Config({}))
        with pytest.raises(BridgeConfigurationError):
            await adapter.start()

    @pytest.mark.asyncio
    async def test_connect_failure_is_terminal(self):
        adapter = IRCAdapter(_config(reconnect_attempts=1))
        adapter._client = MagicMock()

        with patch("discirc.adapters.irc._connect", AsyncMock(side_effect=OSError("refused"))):
            await adapter._run_connection()

        err = adapter.terminal_error()
        assert isinstance(err, AdapterTerminatedError)
        assert err.side == "irc"
        assert isinstance(err.__cause__, OSError)
        assert adapter.inbound.closed

    @pytest.mark.asyncio
    async def test_reconnects_after_disconnect(self):
        adapter = IRCAdapter(_config())
        client = adapter._client = MagicMock()
        calls = 0

        async def disconnected():
            nonlocal calls
            calls += 1
            if calls == 2:
                adapter._stopping = True

        client.wait_disconnected = disconnected
        connect = AsyncMock()

        with patch("discirc.adapters.irc._connect", connect):
            await adapter._run_connection()

        assert connect.await_count == 2
        assert adapter.terminal_error() is None


class TestIRCClient:
    def _client(self):
        adapter = MagicMock()
        client = IRCClient(adapter, "discirc")
        client.nickname = "discirc"
        return client, adapter

    @pytest.mark.asyncio
    async def test_channel_message_forwarded(self):
        client, adapter = self._client()
        with patch.object(pydle.Client, "on_channel_message", AsyncMock(), create=True):
            await client.on_channel_message("#general", "bob", "yo")
        adapter.handle_message.assert_called_once_with("#general", "bob", "yo")

    @pytest.mark.asyncio
    async def test_own_message_skipped(self):
        client, adapter = self._client()
        with patch.object(pydle.Client, "on_channel_message", AsyncMock(), create=True):
            await client.on_channel_message("#general", "DiscIRC", "echo")
        adapter.handle_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_channel_action_forwarded(self):
        client, adapter = self._client()
        await client.on_ctcp_action("bob", "#general", "waves")
        adapter.handle_message.assert_called_once_with("#general", "bob", "waves", is_action=True)

    @pytest.mark.asyncio
    async def test_private_action_skipped(self):
        client, adapter = self._client()
        await client.on_ctcp_action("bob", "discirc", "waves")
        adapter.handle_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_own_join_clears_pending(self):
        client, _ = self._client()
        client.pending_joins.add("#general")
        with patch.object(pydle.Client, "on_join", AsyncMock(), create=True):
            await client.on_join("#General", "discirc")
        assert client.pending_joins == set()

    @pytest.mark.asyncio
    async def test_disconnect_sets_event(self):
        client, _ = self._client()
        with patch.object(pydle.Client, "on_disconnect", AsyncMock(), create=True):
            await client.on_disconnect(expected=False)
        await asyncio.wait_for(client.wait_disconnected(), timeout=1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("numeric", ["403", "405", "471", "473", "474", "475", "477"])
    async def test_refused_join_clears_pending(self, numeric):
        client, _ = self._client()
        client.pending_joins.add("#locked")
        refusal = MagicMock(command=numeric, params=["discirc", "#Locked", "Cannot join channel"])

        await getattr(client, f"on_raw_{numeric}")(refusal)

        assert client.pending_joins == set()


class TestJoinRetry:
    @pytest.mark.asyncio
    async def test_refused_join_is_retried_on_next_reconcile(self):
        adapter = IRCAdapter(_config())
        client = adapter._client = _connected_client()
        first = await adapter.ensure_joined(["#locked"])
        refusal = MagicMock(command="474", params=["discirc", "#locked", "Cannot join channel (+b)"])

        await IRCClient._on_join_refused(client, refusal)
        second = await adapter.ensure_joined(["#locked"])

        assert first == ["#locked"]
        assert second == ["#locked"]
        assert client.join.await_count == 2

    @pytest.mark.asyncio
    async def test_pending_join_not_repeated_before_reply(self):
        adapter = IRCAdapter(_config())
        client = adapter._client = _connected_client()

        await adapter.ensure_joined(["#slow"])
        again = await adapter.ensure_joined(["#slow"])

        assert again == []
        client.join.assert_awaited_once_with("#slow")
