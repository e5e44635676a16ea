"""Event types crossing the adapter boundary.

Adapters translate whatever their client library hands them into one of the
closed set below; the relay never sees library objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from discirc.core.constants import Side


@dataclass(frozen=True)
class MessageReceived:
    """One relayable payload from a channel: the text body or one attachment URL."""

    side: Side
    channel: str | int
    sender_id: str | int
    sender: str
    content: str
    is_attachment: bool = False
    is_action: bool = False
    # user id -> name for users referenced by the message (Discord mention list)
    mentions: dict[Any, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MembershipChanged:
    """A user's display name became known or changed."""

    side: Side
    user_id: str | int
    name: str


@dataclass(frozen=True)
class ConnectionReady:
    """The adapter finished (re)connecting and may join channels."""

    side: Side


AdapterEvent = Union[MessageReceived, MembershipChanged, ConnectionReady]


@dataclass(frozen=True)
class OutboundChunk:
    """A single send, already within the destination's size limit."""

    channel: str | int
    text: str

