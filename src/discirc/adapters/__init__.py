"""Protocol adapters. Each implements base.AdapterBase."""

from discirc.adapters.base import AdapterBase
from discirc.adapters.disc import DiscordAdapter, list_discord_channels
from discirc.adapters.irc import IRCAdapter, list_irc_channels

__all__ = ["AdapterBase", "DiscordAdapter", "IRCAdapter", "list_discord_channels", "list_irc_channels"]
