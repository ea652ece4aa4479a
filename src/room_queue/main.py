#!/usr/bin/env python3
"""Main entry point for the room queue."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import logging.config
import signal
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from room_queue.domain.shared.exceptions import (
    ConfigurationError,
    ConflictExhaustedError,
    ValidationError,
)
from room_queue.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from room_queue.config.container import Container
    from room_queue.config.settings import Settings

_LOGGING_CONFIG_PATH = Path(__file__).resolve().parents[2] / "logging_config.json"

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO") -> None:
    resolved_level = getattr(logging, log_level.upper(), logging.INFO)

    try:
        with open(_LOGGING_CONFIG_PATH) as f:
            config = json.load(f)
        logging.config.dictConfig(config)
    except (FileNotFoundError, json.JSONDecodeError, ValueError):
        logging.warning(
            "Could not load %s, falling back to basic config", _LOGGING_CONFIG_PATH
        )
        logging.basicConfig(
            level=resolved_level,
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    logging.getLogger().setLevel(resolved_level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="room-queue",
        description="Shared music queue for a room, synchronized through an event log.",
    )
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="keep the queue in sync (and play it with --arbiter)")
    run.add_argument(
        "--arbiter",
        action="store_true",
        help="run the playback arbiter in this process (only one per room)",
    )

    enqueue = sub.add_parser("enqueue", help="add a track URL to the queue")
    enqueue.add_argument("url")
    enqueue.add_argument("--by", default=None, help="name recorded as the requester")

    sub.add_parser("state", help="print queue, now playing and history as JSON")
    sub.add_parser("skip", help="ask the arbiter to skip the current track")
    sub.add_parser("clear", help="clear the queue")

    reorder = sub.add_parser("reorder", help="move queued ids to the front, in order")
    reorder.add_argument("ids", nargs="+", type=int)

    return parser


async def run_service(container: Container, *, arbiter: bool = False) -> int:
    """Run the client loop (and optionally the arbiter) until a shutdown signal."""
    settings = container.settings
    client = container.queue_client

    await client.refresh()
    if not client.get_state().connected:
        logger.warning(LogTemplates.APP_DISCONNECTED)
    client.start()

    if arbiter or settings.arbiter.enabled:
        container.playback_arbiter.start()
    if settings.relay_configured:
        container.webhook_relay.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass

    try:
        await stop.wait()
        logger.info(LogTemplates.APP_SHUTDOWN_SIGNAL)
    finally:
        await container.shutdown()
    return 0


async def run_command(container: Container, args: argparse.Namespace) -> int:
    """Run a one-shot consumer operation against a fresh read of the log."""
    client = container.queue_client
    try:
        await client.refresh()

        if args.command == "enqueue":
            item = await client.enqueue(args.url, by=args.by)
            print(json.dumps({"id": item.id, "url": item.url, "pending": item.pending}))
        elif args.command == "skip":
            event = await client.skip()
            print(json.dumps({"requested": event is not None}))
        elif args.command == "clear":
            event = await client.clear()
            print(json.dumps({"cleared": event is not None}))
        elif args.command == "reorder":
            await client.reorder(args.ids)
            await client.refresh()
            print(json.dumps(client.get_state().to_view(), indent=2))
        else:
            print(json.dumps(client.get_state().to_view(), indent=2))
        return 0
    except (ValidationError, ConflictExhaustedError) as e:
        logger.error(e.message)
        return 1
    finally:
        await container.shutdown()


def main(argv: Sequence[str] | None = None) -> int:
    from room_queue.config.settings import get_settings

    args = build_parser().parse_args(argv)
    settings: Settings = get_settings()
    setup_logging(settings.log_level)

    from room_queue.config.container import create_container

    container = create_container(settings)

    try:
        if args.command in (None, "run"):
            logger.info(LogTemplates.APP_STARTING, settings.room, settings.environment)
            code = asyncio.run(run_service(container, arbiter=getattr(args, "arbiter", False)))
            logger.info(LogTemplates.APP_STOPPED)
            return code
        return asyncio.run(run_command(container, args))
    except ConfigurationError as e:
        logger.error(LogTemplates.APP_CONFIGURATION_ERROR, e.message)
        return 1
    except KeyboardInterrupt:
        logger.info(LogTemplates.APP_KEYBOARD_INTERRUPT)
        return 0
    except Exception as e:
        logger.exception(LogTemplates.APP_FATAL_ERROR, e)
        return 1


def cli() -> None:
    """Console script entry point (used by pyproject.toml [project.scripts])."""
    sys.exit(main())


if __name__ == "__main__":
    cli()  # pragma: no cover
