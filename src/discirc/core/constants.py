"""Protocol constants."""

from __future__ import annotations

from typing import Literal

Side = Literal["irc", "discord"]
SIDES: tuple[Side, ...] = ("irc", "discord")

# How a side measures message size: UTF-8 bytes on the IRC wire, characters on Discord.
SizeUnit = Literal["bytes", "chars"]
SIZE_UNITS: dict[Side, SizeUnit] = {"irc": "bytes", "discord": "chars"}

# PRIVMSG body budget; leaves room for prefix, target and tags within 512 bytes.
IRC_MESSAGE_LIMIT = 400
DISCORD_MESSAGE_LIMIT = 2000

# Largest UTF-8 encoding of a single code point.
MIN_MESSAGE_LIMIT = 4


def other_side(side: Side) -> Side:
    """Return the side a message from `side` is relayed to."""
    return "discord" if side == "irc" else "irc"
