"""Gateway: pipes, binding table, relay."""

from discirc.gateway.pipe import Pipe
from discirc.gateway.relay import Relay, RelayState
from discirc.gateway.router import BindingTable, ChannelBinding, ChannelRouter, ReloadSubscription

__all__ = [
    "BindingTable",
    "ChannelBinding",
    "ChannelRouter",
    "Pipe",
    "Relay",
    "RelayState",
    "ReloadSubscription",
]
