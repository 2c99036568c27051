"""``gamerelay`` console entry point.

Starts the relay and blocks until the operator types ``q`` on standard
input or the process receives SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import TextIO

from gamerelay import logger as console
from gamerelay.config import GameRelayConfig, load_config
from gamerelay.errors import BindError, ConfigError, ReceiveError
from gamerelay.server import ServerLoop

log = logging.getLogger("gamerelay.cli")

QUIT_COMMAND = "q"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gamerelay",
        description="UDP game-session relay: answers PING and fans out MOVE: updates.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to gamerelay.toml. Default: search upwards from the current directory",
    )
    parser.add_argument("--host", default=None, help="Address to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="UDP port (default: 9999)")
    parser.add_argument(
        "--exclude-sender",
        action="store_true",
        default=None,
        help="Do not echo MOVE: broadcasts back to their sender",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
    )
    return parser


def resolve_config(args: argparse.Namespace) -> GameRelayConfig:
    """Load the config file and apply command-line overrides on top."""
    config = load_config(args.config)

    server_overrides = {
        key: value
        for key, value in (("host", args.host), ("port", args.port))
        if value is not None
    }
    if server_overrides:
        config = dataclasses.replace(
            config, server=dataclasses.replace(config.server, **server_overrides)
        )
    if args.exclude_sender:
        config = dataclasses.replace(
            config, relay=dataclasses.replace(config.relay, exclude_sender=True)
        )
    if args.log_level is not None:
        config = dataclasses.replace(
            config, logging=dataclasses.replace(config.logging, level=args.log_level)
        )
    return config


def watch_stdin(loop: asyncio.AbstractEventLoop, stop: asyncio.Event, stream: TextIO) -> threading.Thread:
    """Set *stop* once a ``q`` line is read from *stream*.

    Reading happens on a daemon thread so a blocked ``readline`` never holds
    up interpreter exit. End of input stops the watcher but not the server.
    """

    def read_lines() -> None:
        for line in stream:
            if line.strip() == QUIT_COMMAND:
                loop.call_soon_threadsafe(stop.set)
                return
        log.debug("Standard input closed; use SIGINT/SIGTERM to stop")

    thread = threading.Thread(target=read_lines, name="gamerelay-stdin", daemon=True)
    thread.start()
    return thread


async def run_server(config: GameRelayConfig, *, stdin: TextIO | None = None) -> ServerLoop:
    stop = asyncio.Event()
    server = ServerLoop(config, stop_event=stop)
    await server.start()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - platform dependent
            pass

    print(f"UDP game relay listening on {server.local_address}. Type '{QUIT_COMMAND}' to stop.", flush=True)
    watch_stdin(loop, stop, stdin or sys.stdin)
    try:
        await server.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):  # pragma: no cover - platform dependent
                pass
    return server


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = resolve_config(args)
    except (ConfigError, FileNotFoundError) as exc:
        print(f"gamerelay: {exc}", file=sys.stderr)
        return 2

    console.configure(
        level=config.logging.level,
        formatter=config.logging.formatter,
        colors=config.logging.colors,
    )

    try:
        asyncio.run(run_server(config))
    except (BindError, ReceiveError):
        # ServerLoop has already logged the failure
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution guard
    sys.exit(main())
