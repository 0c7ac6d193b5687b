"""Command-line interface for octofeed."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .config import FeedConfig, load_config
from .connection import ConnectionManager
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="octofeed", description="Live printer status feed for OctoPrint"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    watch_parser = subparsers.add_parser(
        "watch", help="Connect and log every status, job, event and Z offset update"
    )
    watch_parser.add_argument(
        "--connect-timeout",
        type=float,
        default=None,
        help="Give up when the handshake is not acknowledged within this many seconds",
    )

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


async def watch(config: FeedConfig, *, connect_timeout: Optional[float] = None) -> None:
    manager = ConnectionManager.from_config(config)

    manager.printer_status.subscribe(lambda value: LOGGER.info("printer status: %s", value))
    manager.job_status.subscribe(lambda value: LOGGER.info("job status: %s", value))
    manager.events.subscribe(lambda value: LOGGER.info("event: %s", value))
    manager.z_offset.subscribe(lambda value: LOGGER.info("z offset: %s", value))

    try:
        connected = manager.connect()
        await asyncio.wait_for(connected, timeout=connect_timeout)
        LOGGER.info("octofeed connected to %s", config.octoprint.url)
        await asyncio.Event().wait()
    finally:
        await manager.aclose()


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "watch":
        configure_logging(
            config.logging.level,
            log_path=config.logging.path,
            log_network=config.logging.log_network,
        )
        try:
            asyncio.run(watch(config, connect_timeout=args.connect_timeout))
        except KeyboardInterrupt:
            LOGGER.info("octofeed received shutdown signal")
        except asyncio.TimeoutError:
            LOGGER.error("Handshake not acknowledged within %ss", args.connect_timeout)
            return 1
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                if key == "api_key" and value:
                    value = "<redacted>"
                print(f"{key} = {value}")
            print()
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
