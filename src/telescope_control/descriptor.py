"""Telescope descriptors and the validation primitives for slot state.

A descriptor is the persisted configuration of the telescope occupying a
slot. Descriptors are plain data: they are stored, copied and serialized
independently of whether a client is running for their slot.

Validation is split in two levels:

- ``is_valid_slot``, ``is_valid_port``, ``is_valid_delay`` are pure range
  checks shared by the registry, the lifecycle code and administrative
  callers.
- ``TelescopeDescriptor.validate()`` applies them to a whole descriptor and
  reports every problem found. Storing a descriptor does not call it;
  starting one does.

Example:
    >>> descriptor = TelescopeDescriptor(
    ...     name="Backyard LX200",
    ...     connection=ConnectionKind.LOCAL,
    ...     tcp_port=10003,
    ...     serial_port="/dev/ttyUSB0",
    ...     device_model="Meade LX200 (compatible)",
    ... )
    >>> descriptor.validate()
    []
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any

# =============================================================================
# Constants
# =============================================================================

MIN_SLOT_NUMBER = 0
MAX_SLOT_NUMBER = 9
SLOT_COUNT = MAX_SLOT_NUMBER - MIN_SLOT_NUMBER + 1

MIN_TCP_PORT = 1
MAX_TCP_PORT = 65535
BASE_TCP_PORT = 10000  # default port for slot n is BASE_TCP_PORT + n

MIN_DELAY = 0
MAX_DELAY = 10_000_000  # microseconds
DEFAULT_DELAY = 500_000

DEFAULT_HOST = "localhost"


class ConnectionKind(Enum):
    """How the client for a slot reaches its telescope."""

    VIRTUAL = "virtual"  # Simulated telescope, no transport
    SERIAL = "serial"  # Direct serial line to the device
    REMOTE = "remote"  # Telescope server elsewhere on the network
    LOCAL = "local"  # Telescope server process spawned on this machine


class Equinox(Enum):
    """Coordinate frame the telescope expects for slews."""

    J2000 = "J2000"
    JNOW = "JNow"


class DescriptorError(ValueError):
    """Raised when a persisted descriptor cannot be interpreted at all."""


# =============================================================================
# Validation primitives
# =============================================================================


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_valid_slot(slot: Any) -> bool:
    """Check that ``slot`` is an integer slot number in range.

    Example:
        >>> is_valid_slot(3), is_valid_slot(10), is_valid_slot(True)
        (True, False, False)
    """
    return _is_int(slot) and MIN_SLOT_NUMBER <= slot <= MAX_SLOT_NUMBER


def is_valid_port(port: Any) -> bool:
    """Check that ``port`` is a TCP port number in IANA's range (1-65535).

    Example:
        >>> is_valid_port(10001), is_valid_port(70000)
        (True, False)
    """
    return _is_int(port) and MIN_TCP_PORT <= port <= MAX_TCP_PORT


def is_valid_delay(delay: Any) -> bool:
    """Check that ``delay`` is a GOTO delay in microseconds within bounds.

    Example:
        >>> is_valid_delay(500_000), is_valid_delay(-5)
        (True, False)
    """
    return _is_int(delay) and MIN_DELAY <= delay <= MAX_DELAY


def default_tcp_port(slot: int) -> int:
    """Default TCP port for a slot's telescope server."""
    return BASE_TCP_PORT + slot


# =============================================================================
# Descriptor
# =============================================================================

# Persisted key for each dataclass field whose name differs
_PERSISTED_KEYS = {"host": "host_name"}


@dataclass
class TelescopeDescriptor:
    """Configuration of one telescope slot.

    Attributes:
        name: Display name.
        connection: Kind of client to start for this slot.
        host: Host name of a remote telescope server.
        tcp_port: TCP port of the telescope server (remote or local).
        serial_port: Serial device, e.g. "COM1" or "/dev/ttyS0". Required
            for SERIAL and LOCAL connections.
        equinox: Frame of goto commands sent to this telescope.
        delay: Delay in microseconds the telescope needs to start a slew;
            used by servers to time-stamp their replies.
        device_model: Device catalog key (selects the server driver).
        connect_at_startup: Start the client when descriptors are loaded.
        extra: Persisted keys this core does not interpret (e.g. field of
            view circles for renderers). Kept so they survive a save.
    """

    name: str
    connection: ConnectionKind
    host: str = DEFAULT_HOST
    tcp_port: int = BASE_TCP_PORT
    serial_port: str | None = None
    equinox: Equinox = Equinox.J2000
    delay: int = DEFAULT_DELAY
    device_model: str | None = None
    connect_at_startup: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> list[str]:
        """Return a list of problems with this descriptor (empty if valid)."""
        problems = []

        if not isinstance(self.name, str) or not self.name.strip():
            problems.append("name must be a non-empty string")
        if not is_valid_delay(self.delay):
            problems.append(
                f"delay must be an integer in [{MIN_DELAY}, {MAX_DELAY}] us, "
                f"got {self.delay!r}"
            )

        if self.connection in (ConnectionKind.REMOTE, ConnectionKind.LOCAL):
            if not is_valid_port(self.tcp_port):
                problems.append(f"tcp_port must be in 1-65535, got {self.tcp_port!r}")
        if self.connection is ConnectionKind.REMOTE and not self.host:
            problems.append("host is required for a remote connection")
        if self.connection in (ConnectionKind.SERIAL, ConnectionKind.LOCAL):
            if not self.serial_port:
                problems.append(
                    f"serial_port is required for a {self.connection.value} connection"
                )

        return problems

    @property
    def is_valid(self) -> bool:
        """True when validate() reports no problems."""
        return not self.validate()

    def copy(self, **changes: Any) -> TelescopeDescriptor:
        """Return a copy with ``changes`` applied (extra is copied too)."""
        changes.setdefault("extra", dict(self.extra))
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted JSON object.

        Optional fields that are unset are omitted; ``extra`` keys are
        written alongside the known ones.
        """
        data: dict[str, Any] = dict(self.extra)
        data.update(
            {
                "name": self.name,
                "connection": self.connection.value,
                "host_name": self.host,
                "tcp_port": self.tcp_port,
                "equinox": self.equinox.value,
                "delay": self.delay,
                "connect_at_startup": self.connect_at_startup,
            }
        )
        if self.serial_port is not None:
            data["serial_port"] = self.serial_port
        if self.device_model is not None:
            data["device_model"] = self.device_model
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TelescopeDescriptor:
        """Build a descriptor from its persisted JSON object.

        Only structural problems raise; range problems (bad port, bad
        delay) are left for validate().

        Raises:
            DescriptorError: If ``data`` is not an object, lacks ``name``
                or ``connection``, names an unknown connection kind or
                equinox, or has fields of the wrong JSON type.
        """
        if not isinstance(data, dict):
            raise DescriptorError(f"descriptor must be an object, got {type(data).__name__}")

        try:
            name = data["name"]
            connection = ConnectionKind(data["connection"])
        except KeyError as e:
            raise DescriptorError(f"descriptor is missing {e.args[0]!r}") from e
        except ValueError as e:
            raise DescriptorError(f"unknown connection kind {data['connection']!r}") from e

        try:
            equinox = Equinox(data.get("equinox", Equinox.J2000.value))
        except ValueError as e:
            raise DescriptorError(f"unknown equinox {data['equinox']!r}") from e

        descriptor = cls(
            name=name,
            connection=connection,
            host=data.get("host_name", DEFAULT_HOST),
            tcp_port=data.get("tcp_port", BASE_TCP_PORT),
            serial_port=data.get("serial_port"),
            equinox=equinox,
            delay=data.get("delay", DEFAULT_DELAY),
            device_model=data.get("device_model"),
            connect_at_startup=data.get("connect_at_startup", False),
            extra={k: v for k, v in data.items() if k not in _known_keys()},
        )

        expected = {
            "name": str,
            "host": str,
            "tcp_port": int,
            "delay": int,
            "connect_at_startup": bool,
        }
        for attr, kind in expected.items():
            value = getattr(descriptor, attr)
            if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
                key = _PERSISTED_KEYS.get(attr, attr)
                raise DescriptorError(f"{key} must be {kind.__name__}, got {value!r}")
        for attr in ("serial_port", "device_model"):
            value = getattr(descriptor, attr)
            if value is not None and not isinstance(value, str):
                raise DescriptorError(f"{attr} must be a string, got {value!r}")

        return descriptor


def _known_keys() -> set[str]:
    return {
        _PERSISTED_KEYS.get(f.name, f.name)
        for f in fields(TelescopeDescriptor)
        if f.name != "extra"
    }
