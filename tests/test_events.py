"""Test adapter-boundary event types."""

import dataclasses

import pytest

from discirc.events import ConnectionReady, MembershipChanged, MessageReceived, OutboundChunk


class TestEvents:
    def test_message_received_defaults(self):
        # Arrange & Act
        evt = MessageReceived("discord", 100, 1, "alice", "hi")

        # Assert
        assert evt.is_attachment is False
        assert evt.is_action is False
        assert evt.mentions == {}

    def test_mentions_not_shared_between_events(self):
        first = MessageReceived("discord", 100, 1, "alice", "hi")
        second = MessageReceived("discord", 100, 1, "alice", "hi")
        assert first.mentions is not second.mentions

    def test_equality_by_value(self):
        assert MembershipChanged("discord", 5, "eve") == MembershipChanged("discord", 5, "eve")
        assert ConnectionReady("irc") != ConnectionReady("discord")
        assert OutboundChunk(100, "x") == OutboundChunk(100, "x")

    def test_events_are_frozen(self):
        evt = ConnectionReady("irc")
        with pytest.raises(dataclasses.FrozenInstanceError):
            evt.side = "discord"
