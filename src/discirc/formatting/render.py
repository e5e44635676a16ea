"""Sender prefixes for each destination network."""

from __future__ import annotations

from discirc.formatting.irc_to_discord import escape_markdown


def render_for_irc(sender: str, text: str, *, action: bool = False) -> str:
    """Plain `sender: text`; `* sender text` for /me-style actions."""
    if action:
        return f"* {sender} {text}"
    return f"{sender}: {text}"


def render_for_discord(sender: str, text: str, *, action: bool = False) -> str:
    """Bold sender name, `**sender**: text`; `* **sender** text` for actions."""
    name = escape_markdown(sender)
    if action:
        return f"* **{name}** {text}"
    return f"**{name}**: {text}"
