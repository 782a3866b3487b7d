"""Serial telescope client.

Talks to a telescope (or a protocol bridge) attached to a local serial
line. The port is opened with zero timeouts at construction and every
read is bounded by ``in_waiting``, so a silent device never blocks the
control thread. Messages use the binary telescope server protocol.

Testing:
    Inject a port opener returning an object implementing SerialPort:

    mock = MockSerialPort()
    client = SerialTelescopeClient("Test", "COM1", opener=lambda port, baud: mock)
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from serial import SerialException, SerialTimeoutException

from telescope_control.clients.protocol import MessageBuffer, ProtocolError, encode_goto
from telescope_control.clients.types import (
    BaseTelescopeClient,
    ClientCreationError,
    ClientState,
)
from telescope_control.descriptor import Equinox
from telescope_control.drivers.serial import DEFAULT_BAUDRATE, SerialPort, open_serial_port
from telescope_control.observability import get_logger
from telescope_control.utils.coordinates import RaDec

if TYPE_CHECKING:
    from telescope_control.observability import DiagnosticLog

logger = get_logger(__name__)

SerialOpener = Callable[[str, int], SerialPort]


class SerialTelescopeClient(BaseTelescopeClient):
    """Client for a telescope on a directly attached serial line."""

    def __init__(
        self,
        name: str,
        port: str,
        equinox: Equinox = Equinox.J2000,
        log: DiagnosticLog | None = None,
        baudrate: int = DEFAULT_BAUDRATE,
        opener: SerialOpener = open_serial_port,
    ) -> None:
        """Open the serial port.

        Args:
            name: Display name.
            port: Serial device, e.g. "COM1" or "/dev/ttyS0".
            equinox: Frame the telescope works in.
            log: Optional per-slot diagnostic log.
            baudrate: Line speed.
            opener: Function opening the port; tests inject mocks here.

        Raises:
            ClientCreationError: If the port cannot be opened.
        """
        super().__init__(name, equinox, log)
        self.port_name = port
        try:
            self._serial: SerialPort | None = opener(port, baudrate)
        except (SerialException, OSError, ValueError) as e:
            raise ClientCreationError(f"Failed to open serial port {port}: {e}") from e
        self._buffer = MessageBuffer()
        self._outgoing = bytearray()
        logger.info("Serial port opened", name=name, port=port, baudrate=baudrate)

    def connect(self, now: float) -> None:
        # The port is already open; the device counts as connected once
        # it sends its first position report.
        self._start_connecting(now)

    def communication_step(self, now: float) -> None:
        if self.state not in (ClientState.CONNECTING, ClientState.CONNECTED):
            return
        serial_port = self._serial
        if serial_port is None or not serial_port.is_open:
            self._set_disconnected("serial port closed")
            return

        try:
            self._flush(serial_port)
            waiting = serial_port.in_waiting
            if not waiting:
                return
            data = serial_port.read(waiting)
            for message in self._buffer.feed(data):
                self._set_position(message.coords, now, message.status, message.time_us)
        except ProtocolError as e:
            self.fail(f"malformed data on {self.port_name}: {e}")
        except (SerialException, OSError) as e:
            self.fail(f"serial I/O failed on {self.port_name}: {e}")

    def send_goto(self, target: RaDec, equinox: Equinox) -> bool:
        if not self.is_connected:
            return self._reject_goto(target)
        self._outgoing.extend(encode_goto(target, time.time_ns() // 1000))
        self._diagnostic("Goto queued", ra=target.ra, dec=target.dec, equinox=equinox.value)
        return True

    def close(self) -> None:
        if not self.state.is_terminal:
            self._set_disconnected("closed")
        self._release()

    def _flush(self, serial_port: SerialPort) -> None:
        if not self._outgoing:
            return
        try:
            written = serial_port.write(bytes(self._outgoing)) or 0
        except SerialTimeoutException:
            # Output buffer full, retry next step
            return
        del self._outgoing[:written]

    def _release(self) -> None:
        if self._serial is not None:
            self._serial.close()
            self._serial = None
            logger.debug("Serial port closed", port=self.port_name)
