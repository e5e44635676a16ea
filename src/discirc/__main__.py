"""Bridge entrypoint: `run` the relay or `list` channels on both networks."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import logging.handlers
import os
import signal
import socket
import sys
from pathlib import Path

import yaml
from loguru import logger

from discirc import __version__
from discirc.adapters import DiscordAdapter, IRCAdapter, list_discord_channels, list_irc_channels
from discirc.config import Config, load_config_with_env
from discirc.core.constants import SIDES
from discirc.core.errors import BridgeConfigurationError, BridgeError
from discirc.gateway import BindingTable, ChannelBinding, ChannelRouter, Relay
from discirc.identity import MentionCache

# Third-party libraries to intercept and route through loguru
_INTERCEPTED_LIBRARIES = ["discord", "pydle", "asyncio"]

_CONSOLE_LEVELS = ("INFO", "DEBUG", "TRACE")
_SYSLOG_LEVELS = ("WARNING", "INFO", "DEBUG", "TRACE")


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.patch(
            lambda r: r.update(
                name=record.name,
                function=record.funcName,
                line=record.lineno,
            ),
        ).opt(exception=record.exc_info).log(level, record.getMessage())


def _intercept_logging(level: str) -> None:
    """Route third-party library logs to loguru."""
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for lib in _INTERCEPTED_LIBRARIES:
        lib_logger = logging.getLogger(lib)
        lib_logger.handlers = [InterceptHandler()]
        lib_logger.propagate = False
        lib_logger.setLevel("DEBUG" if level == "TRACE" else level)


def _syslog_handler(server: str | None) -> logging.Handler:
    """Syslog over TCP to `host[:port]`, else the local socket, else UDP localhost."""
    if server:
        host, _, port = server.partition(":")
        return logging.handlers.SysLogHandler(
            address=(host, int(port or 601)),
            facility=logging.handlers.SysLogHandler.LOG_DAEMON,
            socktype=socket.SOCK_STREAM,
        )
    if Path("/dev/log").exists():
        return logging.handlers.SysLogHandler(address="/dev/log", facility=logging.handlers.SysLogHandler.LOG_DAEMON)
    return logging.handlers.SysLogHandler(address=("127.0.0.1", 514), facility=logging.handlers.SysLogHandler.LOG_DAEMON)


def setup_logging(verbose: int = 0, quiet: int = 0, syslog_server: str | None = None) -> None:
    """Configure loguru. Replace default logging.

    verbose 0/1/2+ -> console INFO/DEBUG/TRACE, syslog WARNING/INFO/DEBUG.
    quiet 1 drops the syslog sink, 2+ disables logging entirely.
    LOG_LEVEL picks the console level when verbose is 0.
    """
    logger.remove()
    if quiet >= 2:
        return

    console_level = _CONSOLE_LEVELS[min(verbose, len(_CONSOLE_LEVELS) - 1)]
    syslog_level = _SYSLOG_LEVELS[min(verbose, len(_SYSLOG_LEVELS) - 1)]
    if not verbose:
        env_level = (os.environ.get("LOG_LEVEL") or "").upper()
        if env_level in ("TRACE", "DEBUG", "INFO", "WARNING", "ERROR"):
            console_level = env_level

    logger.add(
        sys.stderr,
        level=console_level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}",
    )
    if quiet == 0:
        try:
            logger.add(_syslog_handler(syslog_server), level=syslog_level, format="discirc[{process}]: {message}")
        except OSError as exc:
            logger.warning("Syslog unavailable ({}); logging to stderr only", exc)
    _intercept_logging(console_level)


def load_runtime_config(config_path: Path) -> Config:
    """Load and wrap the config document."""
    return Config(load_config_with_env(config_path))


def reload_bindings(config_path: Path, router: ChannelRouter) -> bool:
    """Re-read bindings and swap them in. On any failure the old table stays."""
    try:
        router.load_from_config(load_config_with_env(config_path))
    except BridgeConfigurationError as exc:
        logger.error("Config reload failed, keeping {} bindings: {}", len(router.table), exc)
        return False
    logger.info("Config reloaded from {} (connection settings need a restart)", config_path)
    return True


def _install_signal_handlers(relay: Relay, router: ChannelRouter, config_path: Path) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGHUP, reload_bindings, config_path, router)
        loop.add_signal_handler(signal.SIGINT, relay.stop)
        loop.add_signal_handler(signal.SIGTERM, relay.stop)
    except (NotImplementedError, AttributeError):
        logger.debug("Signal handlers unavailable on this platform; SIGHUP reload disabled")


async def _run(config: Config, config_path: Path) -> None:
    """Build the relay from config and run it until a side dies or a signal stops it."""
    router = ChannelRouter()
    router.load_from_config(config.raw)
    relay = Relay(
        router,
        IRCAdapter(config),
        DiscordAdapter(config),
        MentionCache(),
        limits={side: config.message_limit(side) for side in SIDES},
    )
    _install_signal_handlers(relay, router, config_path)
    logger.info("Bridge ready: {} bindings", len(router.table))
    await relay.run()
    logger.info("Bridge shutting down")


def bindings_from_listing(irc: list[str], discord: dict[str, list[tuple[str, int]]]) -> BindingTable:
    """Pair each Discord channel `name` with IRC `#name` when the server has it."""
    irc_channels = {channel.lower(): channel for channel in irc}
    bindings = []
    for channels in discord.values():
        for name, channel_id in channels:
            irc_name = irc_channels.get(f"#{name}".lower())
            if irc_name:
                bindings.append(ChannelBinding(irc=irc_name, discord=int(channel_id)))
    return BindingTable(bindings)


async def _list(config: Config, as_bindings: bool) -> str:
    irc, discord = await asyncio.gather(list_irc_channels(config), list_discord_channels(config))
    if as_bindings:
        return yaml.safe_dump(bindings_from_listing(irc, discord).to_document(), sort_keys=False)
    listing = {
        "irc": irc,
        "discord": {guild: [[name, channel_id] for name, channel_id in channels] for guild, channels in discord.items()},
    }
    return json.dumps(listing, indent=2)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="discirc", description="discirc: IRC <-> Discord channel relay")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path(os.environ.get("CONFIG_FILE", "discirc.yaml")),
        help="Path to config file (default: discirc.yaml, env CONFIG_FILE)",
    )
    parser.add_argument(
        "--discord-token",
        default=None,
        help="Discord bot token (env DISCORD_TOKEN)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="More logging; repeat for more",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="count",
        default=0,
        help="Once: no syslog. Twice: no logging at all",
    )
    parser.add_argument(
        "--syslog-server",
        "-s",
        default=os.environ.get("SYSLOG_SERVER"),
        help="Syslog server host[:port] (TCP; env SYSLOG_SERVER)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Start relaying")
    list_parser = sub.add_parser("list", help="List channels available on both networks")
    list_parser.add_argument(
        "--as-bindings",
        action="store_true",
        help="Emit a bindings document pairing same-named channels",
    )
    return parser


def _log_cause_chain(exc: BaseException) -> None:
    logger.error("{}: {}", type(exc).__name__, exc)
    cause = exc.__cause__ or exc.__context__
    while cause is not None:
        logger.error("  caused by {}: {}", type(cause).__name__, cause)
        cause = cause.__cause__ or cause.__context__


def main(argv: list[str] | None = None) -> None:
    """Main entrypoint."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.quiet, args.syslog_server)

    if args.discord_token:
        os.environ["DISCORD_TOKEN"] = args.discord_token

    try:
        config = load_runtime_config(args.config)
        logger.info("Config loaded from {}", args.config)
        if args.command == "list":
            print(asyncio.run(_list(config, args.as_bindings)))
        else:
            asyncio.run(_run(config, args.config))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except (BridgeError, OSError) as exc:
        _log_cause_chain(exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
