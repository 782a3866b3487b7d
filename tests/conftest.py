"""Pytest configuration and fixtures for telescope-control tests.

Hardware is never touched: serial ports, server processes and the clock
are replaced by the fakes in tests/helpers.py.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from telescope_control.catalog import DeviceModel
from telescope_control.clients import ClientFactory
from telescope_control.config import ControlConfig, shutdown_control
from telescope_control.control import ControlHooks, TelescopeControl
from telescope_control.observability.logging import ROOT_LOGGER_NAME, StructuredFormatter
from tests.helpers import FakeProcess, MockClock, MockSerialPort

TEST_MODEL = DeviceModel(name="Test Mount", driver="Dummy", default_delay=1_000_000)


@pytest.fixture
def captured_logs(caplog: pytest.LogCaptureFixture) -> Iterator[pytest.LogCaptureFixture]:
    """caplog that also sees records from the non-propagating package logger.

    caplog.text includes the key=value structured data of each record.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    caplog.handler.setFormatter(StructuredFormatter(fmt="%(levelname)s %(name)s %(message)s"))
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger=ROOT_LOGGER_NAME)
    yield caplog
    logger.removeHandler(caplog.handler)


@pytest.fixture
def clock() -> MockClock:
    return MockClock()


@pytest.fixture
def serial_ports() -> dict[str, MockSerialPort]:
    """Mock ports opened by the factory, keyed by device name."""
    return {}


@pytest.fixture
def fake_processes() -> Iterator[list[FakeProcess]]:
    FakeProcess.instances = []
    yield FakeProcess.instances
    FakeProcess.instances = []


@pytest.fixture
def server_dir(tmp_path: Path) -> Path:
    """Directory holding an executable TelescopeServerDummy."""
    directory = tmp_path / "servers"
    directory.mkdir()
    executable = directory / "TelescopeServerDummy"
    executable.write_text("#!/bin/sh\nexit 0\n")
    executable.chmod(0o755)
    return directory


@pytest.fixture
def factory(
    serial_ports: dict[str, MockSerialPort],
    fake_processes: list[FakeProcess],
    server_dir: Path,
) -> ClientFactory:
    def open_port(port: str, baudrate: int) -> MockSerialPort:
        serial_ports[port] = MockSerialPort(port, baudrate)
        return serial_ports[port]

    return ClientFactory(
        serial_opener=open_port,
        process_launcher=FakeProcess,
        server_directory=server_dir,
        device_models=lambda: {TEST_MODEL.name: TEST_MODEL},
    )


@pytest.fixture
def config(tmp_path: Path) -> ControlConfig:
    return ControlConfig(config_dir=tmp_path / "config")


@pytest.fixture
def hook_calls() -> dict[str, list[tuple[int, str]]]:
    return {"connected": [], "disconnected": []}


@pytest.fixture
def control(
    config: ControlConfig,
    factory: ClientFactory,
    clock: MockClock,
    hook_calls: dict[str, list[tuple[int, str]]],
) -> Iterator[TelescopeControl]:
    hooks = ControlHooks(
        on_client_connected=lambda slot, name: hook_calls["connected"].append((slot, name)),
        on_client_disconnected=lambda slot, name: hook_calls["disconnected"].append(
            (slot, name)
        ),
    )
    control = TelescopeControl(config, factory=factory, clock=clock, hooks=hooks)
    yield control
    control.shutdown()


@pytest.fixture(autouse=True)
def _reset_global_control() -> Iterator[None]:
    yield
    shutdown_control()
