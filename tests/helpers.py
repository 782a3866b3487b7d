"""Test helpers for telescope-control.

Provides protocol compliance assertions and the fakes that stand in for
hardware: a mock serial port, a fake server process, a controllable
clock and a loopback telescope server.

Example:
    from tests.helpers import MockSerialPort, assert_implements_protocol
    from telescope_control.drivers.serial import SerialPort

    def test_mock_port_is_a_serial_port():
        assert_implements_protocol(MockSerialPort(), SerialPort)
"""

from __future__ import annotations

import socket
import subprocess
from typing import Any, Protocol

from telescope_control.clients.protocol import encode_position
from telescope_control.utils.coordinates import RaDec


def assert_implements_protocol(instance: object, protocol: type[Protocol]) -> None:
    """Assert that an instance implements a runtime-checkable Protocol.

    Raises:
        AssertionError: Listing the missing members.
    """
    if isinstance(instance, protocol):
        return
    object_attrs = set(dir(object))
    missing = sorted(
        attr
        for attr in set(dir(protocol)) - object_attrs
        if not attr.startswith("_") and not hasattr(instance, attr)
    )
    raise AssertionError(
        f"{type(instance).__name__} does not implement {protocol.__name__}. "
        f"Missing: {', '.join(missing) or 'unknown'}"
    )


class MockClock:
    """Clock whose time only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.time = start

    def monotonic(self) -> float:
        return self.time

    def advance(self, seconds: float) -> None:
        self.time += seconds


class MockSerialPort:
    """In-memory serial port implementing the SerialPort protocol.

    Bytes given to ``feed`` become readable; everything written is kept
    in ``written``. Setting ``fail_with`` makes every I/O call raise it.
    """

    def __init__(self, port: str = "COM1", baudrate: int = 9600) -> None:
        self.port = port
        self.baudrate = baudrate
        self.is_open = True
        self.written = bytearray()
        self.write_limit: int | None = None
        self.fail_with: Exception | None = None
        self.close_calls = 0
        self._incoming = bytearray()

    def feed(self, data: bytes) -> None:
        self._incoming.extend(data)

    @property
    def in_waiting(self) -> int:
        if self.fail_with is not None:
            raise self.fail_with
        return len(self._incoming)

    def read(self, size: int = 1) -> bytes:
        if self.fail_with is not None:
            raise self.fail_with
        data = bytes(self._incoming[:size])
        del self._incoming[:size]
        return data

    def write(self, data: bytes) -> int:
        if self.fail_with is not None:
            raise self.fail_with
        count = len(data) if self.write_limit is None else min(len(data), self.write_limit)
        self.written.extend(data[:count])
        return count

    def close(self) -> None:
        self.close_calls += 1
        self.is_open = False


class FakeProcess:
    """Popen stand-in recording how the server was launched and stopped."""

    instances: list[FakeProcess] = []

    def __init__(self, args: list[str], **kwargs: Any) -> None:
        self.args = args
        self.kwargs = kwargs
        self.pid = 4242
        self.returncode: int | None = None
        self.terminated = False
        self.killed = False
        self.ignore_terminate = False
        FakeProcess.instances.append(self)

    def poll(self) -> int | None:
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        if not self.ignore_terminate:
            self.returncode = -15

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9

    def wait(self, timeout: float | None = None) -> int:
        if self.returncode is None:
            raise subprocess.TimeoutExpired(self.args, timeout or 0)
        return self.returncode


class LoopbackServer:
    """Minimal telescope server on 127.0.0.1 for TCP client tests.

    Usage:
        with LoopbackServer() as server:
            client = TcpTelescopeClient("Test", "127.0.0.1", server.port)
            ...
            conn = server.accept()
            conn.sendall(position_bytes(RaDec(ra=10.0, dec=20.0)))
    """

    def __init__(self) -> None:
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._listener.bind(("127.0.0.1", 0))
        self._listener.listen(1)
        self._listener.settimeout(5.0)
        self.port: int = self._listener.getsockname()[1]
        self.connections: list[socket.socket] = []

    def accept(self) -> socket.socket:
        conn, _ = self._listener.accept()
        conn.settimeout(5.0)
        self.connections.append(conn)
        return conn

    def close(self) -> None:
        for conn in self.connections:
            conn.close()
        self._listener.close()

    def __enter__(self) -> LoopbackServer:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def free_port() -> int:
    """Return a loopback port nothing is listening on (at the time of the call)."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def position_bytes(coords: RaDec, status: int = 0, time_us: int = 0) -> bytes:
    """Encoded current-position message for ``coords``."""
    return encode_position(coords, time_us, status)
