"""Tests for the device catalog and driver listing."""

import json

import pytest

from telescope_control.catalog import (
    CatalogError,
    DeviceModel,
    bundled_device_models_text,
    load_device_models,
    load_driver_listing,
    parse_device_models,
    restore_default_device_models,
)


class TestDeviceModel:
    def test_server_executable(self):
        assert DeviceModel("LX200", "Lx200").server_executable == "TelescopeServerLx200"

    def test_from_dict(self):
        model = DeviceModel.from_dict(
            "LX200",
            {"driver": "Lx200", "description": "Meade", "default_delay": 1_500_000},
        )
        assert model == DeviceModel("LX200", "Lx200", "Meade", 1_500_000)
        assert DeviceModel.from_dict(model.name, model.to_dict()) == model

    def test_to_dict_includes_port_when_set(self):
        model = DeviceModel("X", "NexStar", default_tcp_port=10005)
        assert model.to_dict()["default_tcp_port"] == 10005

    @pytest.mark.parametrize(
        ("entry", "message"),
        [
            ("Lx200", "not an object"),
            ({}, "no driver"),
            ({"driver": ""}, "no driver"),
            ({"driver": "Lx200", "default_delay": -1}, "invalid default_delay"),
            ({"driver": "Lx200", "default_tcp_port": 0}, "invalid default_tcp_port"),
        ],
    )
    def test_from_dict_errors(self, entry, message):
        with pytest.raises(CatalogError, match=message):
            DeviceModel.from_dict("Bad", entry)


class TestParse:
    def test_bundled_catalog_parses(self):
        models = parse_device_models(bundled_device_models_text())

        assert "Meade LX200 (compatible)" in models
        assert models["Meade LX200 (compatible)"].driver == "Lx200"
        assert {model.driver for model in models.values()} == {"Lx200", "NexStar"}
        assert list(models) == sorted(models)

    @pytest.mark.parametrize("text", ["{not json", "[]", '{"X": {"driver": 5}}'])
    def test_invalid_documents(self, text):
        with pytest.raises(CatalogError):
            parse_device_models(text)


class TestLoadDeviceModels:
    def test_missing_file_is_restored(self, tmp_path, captured_logs):
        """Verifies the bundled catalog replaces a missing user copy.

        Arrangement:
        1. Config directory without device_models.json.

        Action:
        load_device_models() on the missing path.

        Assertion Strategy:
        The file now exists with the bundled content, the returned
        catalog is the bundled one, and the restore is logged.
        """
        path = tmp_path / "config" / "device_models.json"

        models = load_device_models(path)

        assert path.read_text(encoding="utf-8") == bundled_device_models_text()
        assert models == parse_device_models(bundled_device_models_text())
        assert "restoring default" in captured_logs.text

    def test_corrupt_file_is_restored(self, tmp_path):
        path = tmp_path / "device_models.json"
        path.write_text("{corrupt", encoding="utf-8")

        models = load_device_models(path)

        assert "Celestron NexStar (compatible)" in models
        json.loads(path.read_text(encoding="utf-8"))

    def test_user_models_are_kept(self, tmp_path):
        path = tmp_path / "device_models.json"
        path.write_text(json.dumps({"Home Built": {"driver": "Custom"}}), encoding="utf-8")

        models = load_device_models(path)

        assert list(models) == ["Home Built"]
        assert models["Home Built"].server_executable == "TelescopeServerCustom"

    def test_unwritable_location_gives_empty_catalog(self, tmp_path):
        blocker = tmp_path / "not_a_directory"
        blocker.write_text("")

        assert load_device_models(blocker / "device_models.json") == {}

    def test_restore_creates_parent(self, tmp_path):
        path = tmp_path / "a" / "b" / "device_models.json"
        restore_default_device_models(path)
        assert path.exists()


DRIVERS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<driversList>
  <devGroup group="Telescopes">
    <device label="LX200 Basic">
      <driver name="LX200 Basic">indi_lx200basic</driver>
      <version>2.0</version>
    </device>
    <device label="Celestron GPS">
      <driver name="Celestron GPS"> indi_celestron_gps </driver>
    </device>
    <device label="No Driver"/>
  </devGroup>
  <devGroup group="CCDs">
    <device label="Some Camera">
      <driver name="Some Camera">indi_camera</driver>
    </device>
  </devGroup>
</driversList>
"""


class TestDriverListing:
    def test_only_telescopes_group(self, tmp_path):
        path = tmp_path / "drivers.xml"
        path.write_text(DRIVERS_XML, encoding="utf-8")

        listing = load_driver_listing(path)

        assert listing == {
            "LX200 Basic": "indi_lx200basic",
            "Celestron GPS": "indi_celestron_gps",
        }

    def test_ungrouped_devices(self, tmp_path):
        path = tmp_path / "drivers.xml"
        path.write_text(
            '<driversList><device label="Dob"><driver>dob_server</driver></device></driversList>',
            encoding="utf-8",
        )
        assert load_driver_listing(path) == {"Dob": "dob_server"}

    def test_missing_file(self, tmp_path):
        assert load_driver_listing(tmp_path / "drivers.xml") == {}

    def test_malformed_file(self, tmp_path, captured_logs):
        path = tmp_path / "drivers.xml"
        path.write_text("<driversList><device>", encoding="utf-8")

        assert load_driver_listing(path) == {}
        assert "Cannot read driver listing" in captured_logs.text
