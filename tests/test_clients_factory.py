"""Tests for ClientFactory variant selection and server resolution."""

import pytest

from telescope_control.clients import (
    ClientCreationError,
    ClientFactory,
    SerialTelescopeClient,
    ServerProcessClient,
    TcpTelescopeClient,
    VirtualTelescopeClient,
)
from telescope_control.descriptor import ConnectionKind, Equinox, TelescopeDescriptor
from telescope_control.observability import DiagnosticLog
from tests.conftest import TEST_MODEL


def _local(**changes):
    descriptor = TelescopeDescriptor(
        "LX200",
        ConnectionKind.LOCAL,
        tcp_port=10003,
        serial_port="COM3",
        device_model=TEST_MODEL.name,
    )
    return descriptor.copy(**changes)


class TestVariants:
    def test_virtual(self, factory):
        client = factory.create(0, TelescopeDescriptor("Sim", ConnectionKind.VIRTUAL))
        assert isinstance(client, VirtualTelescopeClient)
        assert client.name == "Sim"

    def test_serial_uses_injected_opener(self, factory, serial_ports):
        descriptor = TelescopeDescriptor(
            "Dob", ConnectionKind.SERIAL, serial_port="COM1", equinox=Equinox.JNOW
        )

        client = factory.create(3, descriptor)

        assert isinstance(client, SerialTelescopeClient)
        assert list(serial_ports) == ["COM1"]
        client.close()
        assert serial_ports["COM1"].close_calls == 1

    def test_remote(self, factory):
        descriptor = TelescopeDescriptor(
            "Far", ConnectionKind.REMOTE, host="scope.example.org", tcp_port=10001
        )
        client = factory.create(1, descriptor)
        assert isinstance(client, TcpTelescopeClient)
        assert client.address == "scope.example.org:10001"

    def test_local_spawns_server_from_directory(self, factory, fake_processes, server_dir):
        """Verifies LOCAL slots launch TelescopeServer<driver>.

        Arrangement:
        1. Catalog with "Test Mount" using driver "Dummy".
        2. Executable TelescopeServerDummy in the server directory.

        Action:
        Creates the client for a LOCAL descriptor on port 10003, COM3.

        Assertion Strategy:
        One FakeProcess launched with the resolved path, port and serial
        device.
        """
        client = factory.create(3, _local())

        assert isinstance(client, ServerProcessClient)
        assert fake_processes[0].args == [
            str(server_dir / "TelescopeServerDummy"),
            "10003",
            "COM3",
        ]
        client.close()

    def test_local_output_goes_to_slot_log(self, factory, fake_processes, tmp_path):
        log = DiagnosticLog.open(3, tmp_path)
        try:
            client = factory.create(3, _local(), log)
            assert fake_processes[0].kwargs["stdout"] is not None
            client.close()
        finally:
            log.close()
        assert log.path.exists()


class TestErrors:
    def test_invalid_descriptor(self, factory):
        descriptor = TelescopeDescriptor("Dob", ConnectionKind.SERIAL)
        with pytest.raises(ClientCreationError, match="serial_port is required"):
            factory.create(3, descriptor)

    def test_missing_serial_port_raises_even_if_validate_passes(self, factory, monkeypatch):
        monkeypatch.setattr(TelescopeDescriptor, "validate", lambda self: [])
        descriptor = TelescopeDescriptor("Dob", ConnectionKind.SERIAL)

        with pytest.raises(ClientCreationError, match="needs a serial port"):
            factory.create(3, descriptor)

    def test_local_without_model(self, factory):
        with pytest.raises(ClientCreationError, match="needs a device model"):
            factory.create(3, _local(device_model=None))

    def test_local_unknown_model(self, factory):
        with pytest.raises(ClientCreationError, match="Unknown device model"):
            factory.create(3, _local(device_model="Nonexistent"))

    def test_executable_not_found(self, monkeypatch, fake_processes):
        monkeypatch.setattr("telescope_control.clients.factory.shutil.which", lambda name: None)
        factory = ClientFactory(
            process_launcher=lambda *args, **kwargs: pytest.fail("must not launch"),
            device_models=lambda: {TEST_MODEL.name: TEST_MODEL},
        )

        with pytest.raises(ClientCreationError, match="TelescopeServerDummy"):
            factory.create(3, _local())

    def test_serial_open_failure(self):
        def opener(port, baud):
            raise OSError(2, "No such file or directory")

        factory = ClientFactory(serial_opener=opener)
        descriptor = TelescopeDescriptor("Dob", ConnectionKind.SERIAL, serial_port="/dev/nope")

        with pytest.raises(ClientCreationError, match="/dev/nope"):
            factory.create(2, descriptor)


class TestResolveServerExecutable:
    def test_windows_style_name(self, tmp_path):
        executable = tmp_path / "TelescopeServerDummy.exe"
        executable.write_text("")
        executable.chmod(0o755)
        factory = ClientFactory(
            server_directory=tmp_path,
            device_models=lambda: {TEST_MODEL.name: TEST_MODEL},
        )

        assert factory.resolve_server_executable(_local()) == str(executable)

    def test_non_executable_file_is_skipped(self, tmp_path, monkeypatch):
        (tmp_path / "TelescopeServerDummy").write_text("")
        monkeypatch.setattr(
            "telescope_control.clients.factory.shutil.which",
            lambda name: f"/usr/local/bin/{name}",
        )
        factory = ClientFactory(
            server_directory=tmp_path,
            device_models=lambda: {TEST_MODEL.name: TEST_MODEL},
        )

        assert factory.resolve_server_executable(_local()) == "/usr/local/bin/TelescopeServerDummy"
