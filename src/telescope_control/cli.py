"""CLI entry point for telescope-control.

Provides the ``telescope-control`` console script with subcommands:

- ``server`` - Run the MCP server (default if no subcommand)
- ``list`` - Show the stored telescopes
- ``add`` - Store a telescope at a slot
- ``remove`` - Delete the telescope at a slot
- ``models`` - Show the device catalog
- ``ports`` - Show the serial ports of this machine

Usage::

    telescope-control add 3 "Backyard LX200" local --serial-port /dev/ttyUSB0 \\
        --device-model "Meade LX200 (compatible)"
    telescope-control list
    telescope-control --config-dir /tmp/scopes server --server-logs

The administrative subcommands edit connections.json directly; they do
not start any client.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from functools import lru_cache

from telescope_control.config import ControlConfig
from telescope_control.control import TelescopeControl
from telescope_control.descriptor import (
    ConnectionKind,
    Equinox,
    TelescopeDescriptor,
    default_tcp_port,
)
from telescope_control.drivers.serial import list_serial_ports
from telescope_control.persistence import load_descriptors
from telescope_control.server import add_server_arguments, config_from_args

PROG_NAME = "telescope-control"


@lru_cache(maxsize=1)
def _get_logger() -> logging.Logger:
    """Logger with a message-only format for CLI feedback on stderr."""
    logger = logging.getLogger(PROG_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


def _log(message: str) -> None:
    _get_logger().info(message)


def _open_control(args: argparse.Namespace) -> TelescopeControl:
    """TelescopeControl holding the saved descriptors, no client started."""
    config: ControlConfig = config_from_args(args)
    control = TelescopeControl(config)
    control.registry.replace_all(load_descriptors(config.connections_path))
    return control


def run_list(args: argparse.Namespace) -> int:
    telescopes = _open_control(args).get_telescopes()
    if not telescopes:
        print("No telescopes configured")
        return 0
    for slot, descriptor in telescopes.items():
        details = [descriptor.connection.value, descriptor.equinox.value]
        if descriptor.connection in (ConnectionKind.REMOTE, ConnectionKind.LOCAL):
            details.append(f"{descriptor.host}:{descriptor.tcp_port}")
        if descriptor.serial_port:
            details.append(descriptor.serial_port)
        if descriptor.device_model:
            details.append(descriptor.device_model)
        if descriptor.connect_at_startup:
            details.append("autostart")
        print(f"{slot}: {descriptor.name} ({', '.join(details)})")
    return 0


def run_add(args: argparse.Namespace) -> int:
    control = _open_control(args)
    descriptor = TelescopeDescriptor(
        name=args.name,
        connection=ConnectionKind(args.connection),
        host=args.host,
        tcp_port=args.tcp_port if args.tcp_port is not None else default_tcp_port(args.slot),
        serial_port=args.serial_port,
        equinox=Equinox(args.equinox),
        device_model=args.device_model,
        connect_at_startup=args.autostart,
    )
    if args.delay is not None:
        descriptor.delay = args.delay
    elif descriptor.device_model:
        model = control.get_device_models().get(descriptor.device_model)
        if model is not None:
            descriptor.delay = model.default_delay

    problems = descriptor.validate()
    if problems:
        for problem in problems:
            _log(f"Invalid telescope: {problem}")
        return 1

    result = control.add_telescope_at_slot(args.slot, descriptor)
    _log(result.message)
    return 0 if result else 1


def run_remove(args: argparse.Namespace) -> int:
    result = _open_control(args).remove_telescope_at_slot(args.slot)
    _log(result.message)
    return 0 if result else 1


def run_models(args: argparse.Namespace) -> int:
    control = _open_control(args)
    for name, model in control.get_device_models().items():
        print(f"{name}: {model.server_executable} (delay {model.default_delay} us)")
    listing = control.get_driver_listing()
    if listing:
        print()
        print("Third-party drivers:")
        for label, driver in sorted(listing.items()):
            print(f"{label}: {driver}")
    return 0


def run_ports(args: argparse.Namespace) -> int:
    ports = list_serial_ports()
    if not ports:
        print("No serial ports found")
    for port in ports:
        print(f"{port['device']}: {port['description']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description="Telescope control - manage telescope slots and run the MCP server",
    )
    add_server_arguments(parser)
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Server subcommand (pass-through to server.main())
    subparsers.add_parser(
        "server",
        help="Run MCP server (default if no subcommand)",
        add_help=False,
    )

    subparsers.add_parser("list", help="List stored telescopes")

    add_parser = subparsers.add_parser("add", help="Store a telescope at a slot")
    add_parser.add_argument("slot", type=int, help="Slot number (0-9)")
    add_parser.add_argument("name", help="Display name")
    add_parser.add_argument(
        "connection",
        choices=[kind.value for kind in ConnectionKind],
        help="Connection kind",
    )
    add_parser.add_argument("--host", default="localhost", help="Server host (remote)")
    add_parser.add_argument("--tcp-port", type=int, default=None, help="Server TCP port")
    add_parser.add_argument("--serial-port", default=None, help="Serial device")
    add_parser.add_argument(
        "--equinox",
        choices=[equinox.value for equinox in Equinox],
        default=Equinox.J2000.value,
    )
    add_parser.add_argument("--delay", type=int, default=None, help="Delay in microseconds")
    add_parser.add_argument("--device-model", default=None, help="Device catalog model")
    add_parser.add_argument(
        "--autostart",
        action="store_true",
        help="Start the telescope when the server starts",
    )

    remove_parser = subparsers.add_parser("remove", help="Delete the telescope at a slot")
    remove_parser.add_argument("slot", type=int, help="Slot number (0-9)")

    subparsers.add_parser("models", help="List device catalog models")
    subparsers.add_parser("ports", help="List serial ports")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code 0 for success, non-zero for errors.

    Raises:
        SystemExit: On --help or argument parsing errors.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    # Only parse known args so server flags pass through
    args, _ = parser.parse_known_args(argv)

    handlers = {
        "list": run_list,
        "add": run_add,
        "remove": run_remove,
        "models": run_models,
        "ports": run_ports,
    }
    if args.command in handlers:
        args = parser.parse_args(argv)
        return handlers[args.command](args)

    # Default or "server": delegate to server.main()
    server_argv = [arg for arg in argv if arg != "server"]
    from telescope_control.server import main as server_main

    server_main(server_argv)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
