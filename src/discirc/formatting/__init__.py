"""Message formatting and splitting for cross-protocol bridging."""

from discirc.formatting.discord_to_irc import MENTION_PATTERN, resolve_inline_references
from discirc.formatting.irc_to_discord import escape_markdown, irc_to_discord
from discirc.formatting.message_split import chunk
from discirc.formatting.render import render_for_discord, render_for_irc

__all__ = [
    "MENTION_PATTERN",
    "chunk",
    "escape_markdown",
    "irc_to_discord",
    "render_for_discord",
    "render_for_irc",
    "resolve_inline_references",
]
