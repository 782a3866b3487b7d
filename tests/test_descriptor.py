"""Tests for descriptor.py: validators and TelescopeDescriptor."""

import pytest

from telescope_control.descriptor import (
    DEFAULT_DELAY,
    MAX_DELAY,
    ConnectionKind,
    DescriptorError,
    Equinox,
    TelescopeDescriptor,
    default_tcp_port,
    is_valid_delay,
    is_valid_port,
    is_valid_slot,
)


class TestValidators:
    """Pure range checks shared by the registry and administrative callers."""

    @pytest.mark.parametrize("slot", [0, 5, 9])
    def test_valid_slots(self, slot):
        assert is_valid_slot(slot)

    @pytest.mark.parametrize("slot", [-1, 10, 100, 3.0, "3", None, True])
    def test_invalid_slots(self, slot):
        assert not is_valid_slot(slot)

    def test_port_range(self):
        assert is_valid_port(10001)
        assert is_valid_port(1)
        assert is_valid_port(65535)
        assert not is_valid_port(70000)
        assert not is_valid_port(0)
        assert not is_valid_port("10001")

    def test_delay_range(self):
        assert is_valid_delay(0)
        assert is_valid_delay(DEFAULT_DELAY)
        assert is_valid_delay(MAX_DELAY)
        assert not is_valid_delay(-5)
        assert not is_valid_delay(MAX_DELAY + 1)
        assert not is_valid_delay(1.5)

    def test_default_tcp_port(self):
        assert default_tcp_port(0) == 10000
        assert default_tcp_port(3) == 10003


class TestValidate:
    def test_virtual_needs_only_a_name(self):
        assert TelescopeDescriptor("Sim", ConnectionKind.VIRTUAL).validate() == []

    def test_serial_requires_serial_port(self):
        problems = TelescopeDescriptor("Dob", ConnectionKind.SERIAL).validate()
        assert problems == ["serial_port is required for a serial connection"]

    def test_local_requires_port_and_serial_port(self):
        descriptor = TelescopeDescriptor("LX", ConnectionKind.LOCAL, tcp_port=70000)
        problems = descriptor.validate()
        assert len(problems) == 2
        assert any("tcp_port" in p for p in problems)
        assert any("serial_port" in p for p in problems)

    def test_remote_requires_host(self):
        descriptor = TelescopeDescriptor("Far", ConnectionKind.REMOTE, host="")
        assert descriptor.validate() == ["host is required for a remote connection"]

    def test_reports_every_problem(self):
        descriptor = TelescopeDescriptor(" ", ConnectionKind.REMOTE, tcp_port=0, delay=-5)
        assert len(descriptor.validate()) == 3
        assert not descriptor.is_valid

    def test_serial_ignores_tcp_port(self):
        descriptor = TelescopeDescriptor(
            "Dob", ConnectionKind.SERIAL, tcp_port=0, serial_port="COM1"
        )
        assert descriptor.is_valid


class TestSerialization:
    """Tests for the persisted JSON object format."""

    def test_to_dict_uses_persisted_keys(self):
        descriptor = TelescopeDescriptor(
            "LX200",
            ConnectionKind.LOCAL,
            host="localhost",
            tcp_port=10003,
            serial_port="/dev/ttyUSB0",
            equinox=Equinox.JNOW,
            device_model="Meade LX200 (compatible)",
            connect_at_startup=True,
        )

        data = descriptor.to_dict()

        assert data == {
            "name": "LX200",
            "connection": "local",
            "host_name": "localhost",
            "tcp_port": 10003,
            "serial_port": "/dev/ttyUSB0",
            "equinox": "JNow",
            "delay": DEFAULT_DELAY,
            "device_model": "Meade LX200 (compatible)",
            "connect_at_startup": True,
        }

    def test_optional_fields_omitted(self):
        data = TelescopeDescriptor("Sim", ConnectionKind.VIRTUAL).to_dict()
        assert "serial_port" not in data
        assert "device_model" not in data

    def test_round_trip_keeps_extra_keys(self):
        """Unknown keys (e.g. renderer settings) survive load and save."""
        data = {
            "name": "Dob",
            "connection": "serial",
            "serial_port": "COM1",
            "fov_circles": [0.5, 1.0],
        }

        descriptor = TelescopeDescriptor.from_dict(data)

        assert descriptor.extra == {"fov_circles": [0.5, 1.0]}
        assert descriptor.to_dict()["fov_circles"] == [0.5, 1.0]
        assert TelescopeDescriptor.from_dict(descriptor.to_dict()) == descriptor

    def test_from_dict_defaults(self):
        descriptor = TelescopeDescriptor.from_dict({"name": "Sim", "connection": "virtual"})
        assert descriptor.host == "localhost"
        assert descriptor.equinox is Equinox.J2000
        assert descriptor.delay == DEFAULT_DELAY
        assert descriptor.connect_at_startup is False

    def test_from_dict_keeps_range_problems_for_validate(self):
        descriptor = TelescopeDescriptor.from_dict(
            {"name": "Far", "connection": "remote", "tcp_port": 70000}
        )
        assert not descriptor.is_valid

    @pytest.mark.parametrize(
        ("data", "message"),
        [
            ([], "must be an object"),
            ({"connection": "virtual"}, "missing 'name'"),
            ({"name": "X"}, "missing 'connection'"),
            ({"name": "X", "connection": "telepathic"}, "unknown connection kind"),
            ({"name": "X", "connection": "virtual", "equinox": "B1950"}, "unknown equinox"),
            ({"name": "X", "connection": "virtual", "tcp_port": "10001"}, "tcp_port must be int"),
            ({"name": "X", "connection": "virtual", "delay": True}, "delay must be int"),
            ({"name": 5, "connection": "virtual"}, "name must be str"),
            ({"name": "X", "connection": "virtual", "host_name": 1}, "host_name must be str"),
            ({"name": "X", "connection": "serial", "serial_port": 1}, "serial_port must be"),
        ],
    )
    def test_from_dict_structural_errors(self, data, message):
        with pytest.raises(DescriptorError, match=message):
            TelescopeDescriptor.from_dict(data)

    def test_copy_is_independent(self):
        original = TelescopeDescriptor("Sim", ConnectionKind.VIRTUAL, extra={"a": 1})
        changed = original.copy(name="Other")
        changed.extra["a"] = 2
        assert original.name == "Sim"
        assert original.extra == {"a": 1}
