"""Serial port access for directly attached telescopes.

Provides a protocol over the subset of pyserial used by the serial
telescope client, so tests can inject mock ports, and the functions that
open real ports in non-blocking mode and enumerate available ones.

Protocols:
    SerialPort: Abstraction for serial port operations
    PortEnumerator: Abstraction for discovering serial ports

Functions:
    open_serial_port: Open a pyserial port with zero read/write timeouts
    list_serial_ports: Enumerate ports through pyserial

Example:
    # For testing - create mock implementations
    class MockSerialPort:
        is_open = True
        in_waiting = 0

        def read(self, size=1):
            return b""

        def write(self, data):
            return len(data)

        def close(self):
            self.is_open = False

    client = SerialTelescopeClient("Test", "COM1", opener=lambda p, b: MockSerialPort())
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import serial
import serial.tools.list_ports

DEFAULT_BAUDRATE = 9600


@runtime_checkable
class SerialPort(Protocol):  # pragma: no cover
    """Protocol for serial port operations.

    Matches the subset of ``serial.Serial`` used by the serial telescope
    client. All reads are guarded by ``in_waiting`` so they never block.

    Attributes:
        is_open: Whether the port is currently open.
        in_waiting: Number of bytes waiting to be read.
    """

    @property
    def is_open(self) -> bool:
        """True while the port is open."""
        ...

    @property
    def in_waiting(self) -> int:
        """Number of bytes available to read without blocking.

        Raises:
            SerialException: If the device went away (e.g. USB unplugged).
        """
        ...

    def read(self, size: int = 1) -> bytes:
        """Read up to ``size`` bytes; with timeout=0 returns what is buffered.

        Raises:
            SerialException: If the port is closed or the device failed.
        """
        ...

    def write(self, data: bytes) -> int | None:
        """Write bytes; with write_timeout=0 may write only part of them.

        Returns:
            Number of bytes written, None on some pyserial error paths.

        Raises:
            SerialException: If the port is closed or the device failed.
            SerialTimeoutException: If nothing could be written.
        """
        ...

    def close(self) -> None:
        """Close the port. Safe to call more than once."""
        ...


@runtime_checkable
class PortEnumerator(Protocol):  # pragma: no cover
    """Protocol for enumerating serial ports.

    Abstraction over serial.tools.list_ports for testing.
    """

    def comports(self) -> list[Any]:
        """Return port info objects with ``device`` and ``description``."""
        ...


def open_serial_port(port: str, baudrate: int = DEFAULT_BAUDRATE) -> SerialPort:
    """Open ``port`` for non-blocking use.

    Args:
        port: Device name, e.g. "COM1" or "/dev/ttyUSB0".
        baudrate: Line speed.

    Returns:
        An open ``serial.Serial`` with zero read and write timeouts.

    Raises:
        serial.SerialException: If the port cannot be opened.
    """
    return serial.Serial(port, baudrate=baudrate, timeout=0, write_timeout=0)


def list_serial_ports(enumerator: PortEnumerator | None = None) -> list[dict[str, str]]:
    """List serial ports available on this machine.

    Args:
        enumerator: Injected enumerator for tests; defaults to pyserial.

    Returns:
        List of ``{"device": ..., "description": ...}`` dicts.

    Example:
        >>> for port in list_serial_ports():
        ...     print(port["device"], port["description"])
    """
    ports = (
        enumerator.comports()
        if enumerator is not None
        else serial.tools.list_ports.comports()
    )
    return [
        {"device": port.device, "description": port.description} for port in ports
    ]


__all__ = [
    "DEFAULT_BAUDRATE",
    "PortEnumerator",
    "SerialPort",
    "list_serial_ports",
    "open_serial_port",
]
