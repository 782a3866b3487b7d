"""Client factory: picks the client variant for a descriptor.

Hardware access is injected here, so tests can build every variant
without serial ports or server executables:

    factory = ClientFactory(
        serial_opener=lambda port, baud: MockSerialPort(),
        process_launcher=FakePopen,
        server_directory=tmp_path,
        device_models=lambda: {"Test": DeviceModel("Test", "Dummy")},
    )
"""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from telescope_control.clients.network import TcpTelescopeClient
from telescope_control.clients.process import ProcessLauncher, ServerProcessClient
from telescope_control.clients.serial_client import SerialOpener, SerialTelescopeClient
from telescope_control.clients.types import ClientCreationError, TelescopeClient
from telescope_control.clients.virtual import VirtualTelescopeClient
from telescope_control.descriptor import ConnectionKind, TelescopeDescriptor
from telescope_control.drivers.serial import open_serial_port
from telescope_control.observability import get_logger

if TYPE_CHECKING:
    from telescope_control.catalog import DeviceModel
    from telescope_control.observability import DiagnosticLog

logger = get_logger(__name__)


def _serial_port(descriptor: TelescopeDescriptor) -> str:
    if not descriptor.serial_port:
        raise ClientCreationError(f"{descriptor.connection.value} connection needs a serial port")
    return descriptor.serial_port


class ClientFactory:
    """Creates telescope clients from descriptors."""

    def __init__(
        self,
        serial_opener: SerialOpener = open_serial_port,
        process_launcher: ProcessLauncher = subprocess.Popen,
        server_directory: Path | None = None,
        device_models: Callable[[], Mapping[str, DeviceModel]] | None = None,
    ) -> None:
        """Create a factory.

        Args:
            serial_opener: Opens serial ports for SERIAL slots.
            process_launcher: Popen-compatible launcher for LOCAL slots.
            server_directory: Directory searched first for server
                executables; PATH is searched after it.
            device_models: Returns the device catalog, used to find the
                server driver of LOCAL slots.
        """
        self.serial_opener = serial_opener
        self.process_launcher = process_launcher
        self.server_directory = server_directory
        self._device_models = device_models or dict

    def create(
        self,
        slot: int,
        descriptor: TelescopeDescriptor,
        log: DiagnosticLog | None = None,
    ) -> TelescopeClient:
        """Build the client for ``descriptor`` without connecting it.

        Raises:
            ClientCreationError: If the descriptor is invalid, no server
                executable is found, the process cannot be spawned or the
                serial port cannot be opened.
        """
        problems = descriptor.validate()
        if problems:
            raise ClientCreationError("; ".join(problems))

        connection = descriptor.connection
        if connection is ConnectionKind.VIRTUAL:
            client: TelescopeClient = VirtualTelescopeClient(
                descriptor.name, descriptor.equinox, log
            )
        elif connection is ConnectionKind.SERIAL:
            client = SerialTelescopeClient(
                descriptor.name,
                _serial_port(descriptor),
                descriptor.equinox,
                log,
                opener=self.serial_opener,
            )
        elif connection is ConnectionKind.REMOTE:
            client = TcpTelescopeClient(
                descriptor.name,
                descriptor.host,
                descriptor.tcp_port,
                descriptor.equinox,
                log,
            )
        else:
            client = ServerProcessClient(
                descriptor.name,
                self.resolve_server_executable(descriptor),
                descriptor.tcp_port,
                _serial_port(descriptor),
                descriptor.equinox,
                log,
                launcher=self.process_launcher,
                output_path=log.path if log is not None else None,
            )

        logger.debug(
            "Created telescope client",
            slot=slot,
            connection=connection.value,
            client=type(client).__name__,
        )
        return client

    def resolve_server_executable(self, descriptor: TelescopeDescriptor) -> str:
        """Find the server executable for a LOCAL descriptor.

        Raises:
            ClientCreationError: If the model is unknown or no executable
                is found.
        """
        if not descriptor.device_model:
            raise ClientCreationError("A local server needs a device model")
        model = self._device_models().get(descriptor.device_model)
        if model is None:
            raise ClientCreationError(f"Unknown device model: {descriptor.device_model}")

        name = model.server_executable
        if self.server_directory is not None:
            for candidate in (name, f"{name}.exe"):
                path = self.server_directory / candidate
                if path.is_file() and os.access(path, os.X_OK):
                    return str(path)

        found = shutil.which(name)
        if found is None:
            raise ClientCreationError(f"Telescope server executable not found: {name}")
        return found
