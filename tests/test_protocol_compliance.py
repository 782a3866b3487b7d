"""Tests for protocol compliance across clients and serial drivers.

Verifies that all implementations correctly satisfy their Protocol
interfaces using @runtime_checkable isinstance() checks.

These tests catch missing methods early, ensuring the mocks used
throughout the suite and the real clients are interchangeable.
"""

from __future__ import annotations

import serial.tools.list_ports

from telescope_control.clients import (
    ServerProcessClient,
    TcpTelescopeClient,
    TelescopeClient,
    VirtualTelescopeClient,
)
from telescope_control.clients.serial_client import SerialTelescopeClient
from telescope_control.drivers.serial import PortEnumerator, SerialPort
from tests.helpers import FakeProcess, MockSerialPort, assert_implements_protocol


class TestClientProtocolCompliance:
    """Every connection kind yields a TelescopeClient."""

    def test_virtual_client(self) -> None:
        assert_implements_protocol(VirtualTelescopeClient("Sim"), TelescopeClient)

    def test_serial_client(self) -> None:
        """SerialTelescopeClient over a mock port satisfies TelescopeClient.

        Arrangement:
        1. Opener returning a MockSerialPort.

        Action:
        Call assert_implements_protocol() with the client.

        Assertion Strategy:
        No assertion error raised.
        """
        client = SerialTelescopeClient("Dob", "COM1", opener=MockSerialPort)
        try:
            assert_implements_protocol(client, TelescopeClient)
        finally:
            client.close()

    def test_tcp_client(self) -> None:
        client = TcpTelescopeClient("Far", "127.0.0.1", 10001)
        assert_implements_protocol(client, TelescopeClient)

    def test_server_process_client(self, fake_processes) -> None:
        client = ServerProcessClient(
            "LX200", "TelescopeServerLx200", 10003, "/dev/ttyUSB0", launcher=FakeProcess
        )
        try:
            assert_implements_protocol(client, TelescopeClient)
        finally:
            client.close()


class TestSerialProtocolCompliance:
    def test_mock_serial_port(self) -> None:
        assert_implements_protocol(MockSerialPort(), SerialPort)

    def test_pyserial_enumerator(self) -> None:
        """pyserial's list_ports module is a usable PortEnumerator."""
        assert_implements_protocol(serial.tools.list_ports, PortEnumerator)
