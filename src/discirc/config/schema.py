"""Config schema and accessor."""

from __future__ import annotations

import os
from typing import Any

from discirc.core.constants import DISCORD_MESSAGE_LIMIT, IRC_MESSAGE_LIMIT, MIN_MESSAGE_LIMIT
from discirc.core.errors import BridgeConfigurationError

# Env keys that override config (loaded once per Config instance)
_ENV_OVERRIDE_KEYS = (
    "DISCORD_TOKEN",
    "IRC_NICK",
    "IRC_SASL_PASSWORD",
)


def _load_env_overrides() -> dict[str, str]:
    return {k: os.environ.get(k, "") for k in _ENV_OVERRIDE_KEYS}


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _int_setting(section: dict[str, Any], path: str, key: str, default: int, minimum: int | None = None) -> int:
    """Integer value of section[key]; BridgeConfigurationError if not a number or below minimum."""
    value = section.get(key, default)
    try:
        if isinstance(value, bool):
            raise ValueError(value)
        number = int(value)
    except (TypeError, ValueError):
        raise BridgeConfigurationError(
            f"{path}.{key} must be an integer, got {value!r}",
            code="invalid_setting",
            details={"key": f"{path}.{key}", "value": value},
        ) from None
    if minimum is not None and number < minimum:
        raise BridgeConfigurationError(
            f"{path}.{key} must be at least {minimum}, got {number}",
            code="invalid_setting",
            details={"key": f"{path}.{key}", "value": value},
        )
    return number


class Config:
    """Config accessor with typed properties for each section.

    Constructed explicitly from a loaded document and passed to whoever
    needs it; a reload builds a new instance.
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data = data or {}
        self._env: dict[str, str] = _load_env_overrides()

    @property
    def raw(self) -> dict[str, Any]:
        """Raw config dict for the binding table."""
        return self._data

    def validate_irc(self) -> None:
        """Raise BridgeConfigurationError when no IRC server is configured."""
        if not self.irc_server:
            raise BridgeConfigurationError(
                "irc.server is required",
                code="missing_irc_server",
            )

    # IRC

    @property
    def irc_server(self) -> str:
        return str(_section(self._data, "irc").get("server") or "")

    @property
    def irc_port(self) -> int:
        irc = _section(self._data, "irc")
        default = 6697 if self.irc_tls else 6667
        return _int_setting(irc, "irc", "port", default, minimum=1)

    @property
    def irc_tls(self) -> bool:
        return bool(_section(self._data, "irc").get("tls", True))

    @property
    def irc_tls_verify(self) -> bool:
        return bool(_section(self._data, "irc").get("tls_verify", True))

    @property
    def irc_nickname(self) -> str:
        if self._env.get("IRC_NICK"):
            return self._env["IRC_NICK"]
        return str(_section(self._data, "irc").get("nickname") or "discirc")

    @property
    def irc_username(self) -> str | None:
        return _optional_str(_section(self._data, "irc").get("username"))

    @property
    def irc_realname(self) -> str | None:
        return _optional_str(_section(self._data, "irc").get("realname"))

    @property
    def irc_password(self) -> str | None:
        return _optional_str(_section(self._data, "irc").get("password"))

    @property
    def irc_sasl_username(self) -> str | None:
        return _optional_str(_section(self._data, "irc").get("sasl_username"))

    @property
    def irc_sasl_password(self) -> str | None:
        if self._env.get("IRC_SASL_PASSWORD"):
            return self._env["IRC_SASL_PASSWORD"]
        return _optional_str(_section(self._data, "irc").get("sasl_password"))

    @property
    def irc_reconnect_attempts(self) -> int:
        return max(1, _int_setting(_section(self._data, "irc"), "irc", "reconnect_attempts", 5))

    # Discord

    @property
    def discord_token(self) -> str | None:
        if self._env.get("DISCORD_TOKEN"):
            return self._env["DISCORD_TOKEN"]
        return _optional_str(_section(self._data, "discord").get("token"))

    # Limits

    @property
    def irc_message_limit(self) -> int:
        return _int_setting(_section(self._data, "limits"), "limits", "irc", IRC_MESSAGE_LIMIT, MIN_MESSAGE_LIMIT)

    @property
    def discord_message_limit(self) -> int:
        return _int_setting(
            _section(self._data, "limits"), "limits", "discord", DISCORD_MESSAGE_LIMIT, MIN_MESSAGE_LIMIT
        )

    def message_limit(self, side: str) -> int:
        """Per-message size limit for the destination side."""
        return self.irc_message_limit if side == "irc" else self.discord_message_limit
