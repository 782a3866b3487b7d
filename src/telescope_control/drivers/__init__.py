"""Hardware access for directly attached telescopes.

Serial Protocols:
    SerialPort and PortEnumerator protocols enable testing of the serial
    telescope client without hardware.

    from telescope_control.drivers import SerialPort, PortEnumerator
"""

from telescope_control.drivers.serial import (
    DEFAULT_BAUDRATE,
    PortEnumerator,
    SerialPort,
    list_serial_ports,
    open_serial_port,
)

__all__ = [
    "DEFAULT_BAUDRATE",
    "PortEnumerator",
    "SerialPort",
    "list_serial_ports",
    "open_serial_port",
]
