"""MCP server entry point for telescope control.

Runs the Model Context Protocol over stdio and, on the same event loop,
the scheduler task that calls ``TelescopeControl.update()`` every
``tick_interval`` seconds. Tool handlers and scheduler ticks therefore
share one thread, and the control core is never entered concurrently.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

from mcp.server import Server
from mcp.server.stdio import stdio_server

from telescope_control.config import (
    DEFAULT_COMMUNICATION_TIMEOUT,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_TICK_INTERVAL,
    ControlConfig,
    init_control,
    shutdown_control,
)
from telescope_control.control import TelescopeControl
from telescope_control.observability import configure_logging, get_logger
from telescope_control.tools import telescopes

logger = get_logger(__name__)

SERVER_NAME = "telescope-control"


def create_server() -> Server:
    """Create the MCP server with the telescope tools registered."""
    server = Server(SERVER_NAME)
    telescopes.register(server)
    return server


async def run_scheduler(control: TelescopeControl, interval: float) -> None:
    """Tick ``control`` every ``interval`` seconds until cancelled.

    Exceptions from a tick are logged and the loop continues.
    """
    loop = asyncio.get_running_loop()
    previous = loop.time()
    while True:
        await asyncio.sleep(interval)
        now = loop.time()
        try:
            control.update(now - previous)
        except Exception:
            logger.exception("Scheduler tick failed")
        previous = now


async def run_server(config: ControlConfig) -> None:
    """Serve MCP over stdio until stdin closes.

    Loads the saved telescopes (auto-starting flagged ones), runs the
    scheduler task alongside the protocol and stops every client on exit.
    """
    control = init_control(config)
    server = create_server()
    scheduler = asyncio.create_task(
        run_scheduler(control, config.tick_interval), name="telescope-scheduler"
    )
    logger.info(
        "Telescope control server starting",
        config_dir=str(config.config_dir),
        telescopes=len(control.get_telescopes()),
    )

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        scheduler.cancel()
        try:
            await scheduler
        except asyncio.CancelledError:
            pass
        shutdown_control()
        logger.info("Telescope control server stopped")


def _optional_timeout(value: str) -> float | None:
    """argparse type: seconds, or 0 to disable."""
    seconds = float(value)
    if seconds < 0:
        raise argparse.ArgumentTypeError(f"timeout must be >= 0, got {value}")
    return seconds or None


def add_server_arguments(parser: argparse.ArgumentParser) -> None:
    """Add the configuration options shared by the server and CLI."""
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Directory holding connections.json and device_models.json "
        "(default: ~/.telescope-control)",
    )
    parser.add_argument(
        "--server-dir",
        type=Path,
        default=None,
        help="Directory searched for TelescopeServer* executables before PATH",
    )
    parser.add_argument(
        "--server-logs",
        action="store_true",
        help="Write a diagnostic log per started slot",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse server command line arguments.

    Raises:
        SystemExit: On invalid arguments or --help.
    """
    parser = argparse.ArgumentParser(
        description="Telescope control MCP server - manage and drive telescope slots"
    )
    add_server_arguments(parser)
    parser.add_argument(
        "--tick-interval",
        type=float,
        default=DEFAULT_TICK_INTERVAL,
        help=f"Seconds between scheduler ticks (default: {DEFAULT_TICK_INTERVAL})",
    )
    parser.add_argument(
        "--connect-timeout",
        type=_optional_timeout,
        default=DEFAULT_CONNECT_TIMEOUT,
        help=f"Seconds to wait for a first position report, 0 disables "
        f"(default: {DEFAULT_CONNECT_TIMEOUT})",
    )
    parser.add_argument(
        "--communication-timeout",
        type=_optional_timeout,
        default=DEFAULT_COMMUNICATION_TIMEOUT,
        help=f"Seconds a connected telescope may stay silent, 0 disables "
        f"(default: {DEFAULT_COMMUNICATION_TIMEOUT})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines",
    )
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> ControlConfig:
    """Build a ControlConfig from parsed arguments; unset options keep defaults."""
    config = ControlConfig(use_server_logs=args.server_logs)
    if args.config_dir is not None:
        config.config_dir = args.config_dir.expanduser()
    if args.server_dir is not None:
        config.server_directory = args.server_dir.expanduser()
    for name in ("tick_interval", "connect_timeout", "communication_timeout"):
        if hasattr(args, name):
            setattr(config, name, getattr(args, name))
    return config


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point: configure logging and run the server until stdin closes."""
    args = parse_args(argv)
    # stdout carries the MCP protocol; logs go to stderr
    configure_logging(level=args.log_level, json_format=args.json_logs)

    config = config_from_args(args)
    logger.info("Starting MCP server")
    asyncio.run(run_server(config))


if __name__ == "__main__":  # pragma: no cover
    main()
