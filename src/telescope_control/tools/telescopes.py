"""MCP tools for telescope slot administration and goto.

Every tool returns a single TextContent holding a JSON object. Failures
are returned as ``{"error": <code>, "message": <text>}`` and never raised,
so a bad request cannot take the server down.

The implementations take an optional ``control`` argument; the MCP
handler passes none and they use the instance from get_control().
"""

from __future__ import annotations

import json
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool

from telescope_control.config import get_control
from telescope_control.control import ControlResult, TelescopeControl
from telescope_control.descriptor import (
    MAX_SLOT_NUMBER,
    MIN_SLOT_NUMBER,
    ConnectionKind,
    DescriptorError,
    Equinox,
    TelescopeDescriptor,
    default_tcp_port,
)
from telescope_control.drivers.serial import list_serial_ports
from telescope_control.observability import get_logger
from telescope_control.utils.coordinates import RaDec

logger = get_logger(__name__)

_SLOT_SCHEMA = {
    "type": "integer",
    "description": f"Slot number ({MIN_SLOT_NUMBER}-{MAX_SLOT_NUMBER})",
}

# Tool definitions
TOOLS = [
    Tool(
        name="list_telescopes",
        description="List configured telescopes and the state of their clients",
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    Tool(
        name="get_telescope",
        description="Get the configuration and state of the telescope at a slot",
        inputSchema={
            "type": "object",
            "properties": {"slot": _SLOT_SCHEMA},
            "required": ["slot"],
        },
    ),
    Tool(
        name="add_telescope",
        description="Store a telescope configuration at a slot (replaces any existing one)",
        inputSchema={
            "type": "object",
            "properties": {
                "slot": _SLOT_SCHEMA,
                "name": {"type": "string", "description": "Display name"},
                "connection": {
                    "type": "string",
                    "enum": [kind.value for kind in ConnectionKind],
                    "description": (
                        "virtual (simulated), serial (direct serial line), "
                        "remote (telescope server over TCP), "
                        "local (spawned telescope server)"
                    ),
                },
                "host": {
                    "type": "string",
                    "description": "Server host for remote connections",
                    "default": "localhost",
                },
                "tcp_port": {
                    "type": "integer",
                    "description": "Server TCP port (default 10000 + slot)",
                },
                "serial_port": {
                    "type": "string",
                    "description": "Serial device for serial and local connections",
                },
                "equinox": {
                    "type": "string",
                    "enum": [equinox.value for equinox in Equinox],
                    "default": Equinox.J2000.value,
                },
                "delay": {
                    "type": "integer",
                    "description": "Delay in microseconds",
                },
                "device_model": {
                    "type": "string",
                    "description": "Device catalog model (required for local)",
                },
                "connect_at_startup": {"type": "boolean", "default": False},
            },
            "required": ["slot", "name", "connection"],
        },
    ),
    Tool(
        name="remove_telescope",
        description="Stop and delete the telescope at a slot",
        inputSchema={
            "type": "object",
            "properties": {"slot": _SLOT_SCHEMA},
            "required": ["slot"],
        },
    ),
    Tool(
        name="start_telescope",
        description="Start the client for the telescope at a slot",
        inputSchema={
            "type": "object",
            "properties": {"slot": _SLOT_SCHEMA},
            "required": ["slot"],
        },
    ),
    Tool(
        name="stop_telescope",
        description="Stop the client for the telescope at a slot",
        inputSchema={
            "type": "object",
            "properties": {"slot": _SLOT_SCHEMA},
            "required": ["slot"],
        },
    ),
    Tool(
        name="stop_all_telescopes",
        description="Stop every running telescope client",
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    Tool(
        name="goto_telescope",
        description="Slew the telescope at a slot to J2000 coordinates",
        inputSchema={
            "type": "object",
            "properties": {
                "slot": _SLOT_SCHEMA,
                "ra_hours": {
                    "type": "number",
                    "description": "Right ascension in hours (0-24), J2000",
                },
                "dec_degrees": {
                    "type": "number",
                    "description": "Declination in degrees (-90 to +90), J2000",
                },
            },
            "required": ["slot", "ra_hours", "dec_degrees"],
        },
    ),
    Tool(
        name="get_telescope_position",
        description="Get the last position reported by the telescope at a slot (J2000)",
        inputSchema={
            "type": "object",
            "properties": {"slot": _SLOT_SCHEMA},
            "required": ["slot"],
        },
    ),
    Tool(
        name="list_device_models",
        description="List device catalog models and third-party drivers",
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    Tool(
        name="list_serial_ports",
        description="List serial ports available for serial and local telescopes",
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
]


def register(server: Server) -> None:
    """Register the telescope tools with the MCP server.

    Args:
        server: MCP Server instance, not yet running.

    Example:
        >>> server = Server("telescope-control")
        >>> register(server)
    """

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return TOOLS

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Route tool calls to the implementations below."""
        return await dispatch(name, arguments)


async def dispatch(
    name: str, arguments: dict[str, Any], control: TelescopeControl | None = None
) -> list[TextContent]:
    """Run tool ``name`` with ``arguments``.

    Returns:
        Single TextContent with the JSON result or error.
    """
    try:
        if name == "list_telescopes":
            return await _list_telescopes(control)
        elif name == "get_telescope":
            return await _get_telescope(arguments["slot"], control)
        elif name == "add_telescope":
            return await _add_telescope(arguments, control)
        elif name == "remove_telescope":
            return await _remove_telescope(arguments["slot"], control)
        elif name == "start_telescope":
            return await _start_telescope(arguments["slot"], control)
        elif name == "stop_telescope":
            return await _stop_telescope(arguments["slot"], control)
        elif name == "stop_all_telescopes":
            return await _stop_all_telescopes(control)
        elif name == "goto_telescope":
            return await _goto_telescope(
                arguments["slot"],
                arguments["ra_hours"],
                arguments["dec_degrees"],
                control,
            )
        elif name == "get_telescope_position":
            return await _get_telescope_position(arguments["slot"], control)
        elif name == "list_device_models":
            return await _list_device_models(control)
        elif name == "list_serial_ports":
            return await _list_serial_ports()
        else:
            return _error("unknown_tool", f"Unknown tool: {name}")
    except KeyError as e:
        return _error("invalid_arguments", f"Missing argument: {e.args[0]}")
    except Exception as e:
        logger.exception("Tool failed", tool=name)
        return _error("internal", str(e))


# Tool implementations


def _text(payload: dict[str, Any]) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2))]


def _error(code: str, message: str) -> list[TextContent]:
    return _text({"error": code, "message": message})


def _result(result: ControlResult, **extra: Any) -> list[TextContent]:
    return _text({"success": result.success, "message": result.message, **extra})


def _slot_status(control: TelescopeControl, slot: int) -> dict[str, Any]:
    client = control.get_client_at_slot(slot)
    position = control.get_position(slot)
    return {
        "active": client is not None,
        "state": client.state.value if client is not None else None,
        "position": position.to_dict() if position is not None else None,
    }


async def _list_telescopes(control: TelescopeControl | None = None) -> list[TextContent]:
    """List every stored telescope.

    Returns:
        JSON: {"count": int, "telescopes": [{"slot": int, "name": str,
        "connection": str, "active": bool, "state": str | null}, ...]}
    """
    control = control or get_control()
    telescopes = [
        {
            "slot": slot,
            "name": descriptor.name,
            "connection": descriptor.connection.value,
            "active": control.is_existing_client_at_slot(slot),
            "state": (
                client.state.value
                if (client := control.get_client_at_slot(slot)) is not None
                else None
            ),
        }
        for slot, descriptor in control.get_telescopes().items()
    ]
    return _text({"count": len(telescopes), "telescopes": telescopes})


async def _get_telescope(slot: int, control: TelescopeControl | None = None) -> list[TextContent]:
    control = control or get_control()
    descriptor = control.get_telescope_at_slot(slot)
    if descriptor is None:
        return _error("not_found", f"No telescope at slot {slot!r}")
    return _text({"slot": slot, **descriptor.to_dict(), **_slot_status(control, slot)})


async def _add_telescope(
    arguments: dict[str, Any], control: TelescopeControl | None = None
) -> list[TextContent]:
    """Build a descriptor from tool arguments and store it.

    The descriptor is validated here, before storing, so that an agent
    gets every problem back at once.
    """
    control = control or get_control()
    slot = arguments["slot"]

    data = {
        key: value
        for key, value in arguments.items()
        if key != "slot" and value is not None
    }
    if "host" in data:
        data["host_name"] = data.pop("host")
    if isinstance(slot, int) and "tcp_port" not in data:
        data["tcp_port"] = default_tcp_port(slot)
    model = control.get_device_models().get(data.get("device_model", ""))
    if model is not None:
        data.setdefault("delay", model.default_delay)
        if model.default_tcp_port is not None and "tcp_port" not in arguments:
            data["tcp_port"] = model.default_tcp_port

    try:
        descriptor = TelescopeDescriptor.from_dict(data)
    except DescriptorError as e:
        return _error("invalid_descriptor", str(e))
    problems = descriptor.validate()
    if problems:
        return _text(
            {
                "error": "invalid_descriptor",
                "message": "; ".join(problems),
                "problems": problems,
            }
        )

    return _result(control.add_telescope_at_slot(slot, descriptor))


async def _remove_telescope(
    slot: int, control: TelescopeControl | None = None
) -> list[TextContent]:
    control = control or get_control()
    return _result(control.remove_telescope_at_slot(slot))


async def _start_telescope(slot: int, control: TelescopeControl | None = None) -> list[TextContent]:
    control = control or get_control()
    return _result(control.start_telescope_at_slot(slot))


async def _stop_telescope(slot: int, control: TelescopeControl | None = None) -> list[TextContent]:
    control = control or get_control()
    return _result(control.stop_telescope_at_slot(slot))


async def _stop_all_telescopes(control: TelescopeControl | None = None) -> list[TextContent]:
    control = control or get_control()
    return _result(control.stop_all_telescopes())


async def _goto_telescope(
    slot: int,
    ra_hours: float,
    dec_degrees: float,
    control: TelescopeControl | None = None,
) -> list[TextContent]:
    """Send a J2000 goto to the telescope at ``slot``."""
    control = control or get_control()
    if not -90.0 <= dec_degrees <= 90.0:
        return _error("invalid_coordinates", f"Declination out of range: {dec_degrees}")
    if not 0.0 <= ra_hours < 24.0:
        return _error("invalid_coordinates", f"Right ascension out of range: {ra_hours}")
    target = RaDec.from_hours(ra_hours, dec_degrees)
    return _result(control.telescope_goto(slot, target), target=target.to_dict())


async def _get_telescope_position(
    slot: int, control: TelescopeControl | None = None
) -> list[TextContent]:
    control = control or get_control()
    if not control.is_existing_client_at_slot(slot):
        return _error("not_active", f"No active telescope at slot {slot!r}")
    position = control.get_position(slot)
    j2000 = control.get_position_j2000(slot)
    return _text(
        {
            "slot": slot,
            "state": control.get_client_at_slot(slot).state.value,
            "position": position.to_dict() if position is not None else None,
            "j2000": j2000.to_dict() if j2000 is not None else None,
        }
    )


async def _list_device_models(control: TelescopeControl | None = None) -> list[TextContent]:
    control = control or get_control()
    return _text(
        {
            "models": {
                name: model.to_dict() for name, model in control.get_device_models().items()
            },
            "third_party_drivers": control.get_driver_listing(),
        }
    )


async def _list_serial_ports() -> list[TextContent]:
    ports = list_serial_ports()
    return _text({"count": len(ports), "ports": ports})
