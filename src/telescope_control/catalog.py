"""Device catalog: known telescope models and their server drivers.

The catalog maps a model name (the ``device_model`` of a descriptor) to
the telescope server driver that handles it. It lives in the user's
configuration directory so it can be extended; a default copy ships in
``telescope_control/data/device_models.json`` and is restored whenever
the user's copy is missing or unreadable.

A second, optional source is a third-party driver listing in the INDI
``drivers.xml`` format, which maps device labels to driver executables.

Catalog file format::

    {
        "Meade LX200 (compatible)": {
            "driver": "Lx200",
            "description": "...",
            "default_delay": 1500000
        },
        ...
    }
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from importlib.resources import files
from pathlib import Path
from typing import Any

from telescope_control.descriptor import DEFAULT_DELAY, is_valid_delay, is_valid_port
from telescope_control.observability import get_logger

logger = get_logger(__name__)

DEVICE_MODELS_FILENAME = "device_models.json"
DRIVER_LISTING_FILENAME = "drivers.xml"
TELESCOPE_DRIVER_GROUP = "Telescopes"


class CatalogError(ValueError):
    """Raised when a catalog document cannot be parsed."""


@dataclass(frozen=True)
class DeviceModel:
    """One entry of the device catalog.

    Attributes:
        name: Model identifier, the catalog key.
        driver: Server driver identifier; the server executable is
            ``TelescopeServer<driver>``.
        description: Human-readable notes.
        default_delay: Suggested delay in microseconds for new descriptors.
        default_tcp_port: Suggested server port, None for the slot default.
    """

    name: str
    driver: str
    description: str = ""
    default_delay: int = DEFAULT_DELAY
    default_tcp_port: int | None = None

    @property
    def server_executable(self) -> str:
        return f"TelescopeServer{self.driver}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "driver": self.driver,
            "description": self.description,
            "default_delay": self.default_delay,
        }
        if self.default_tcp_port is not None:
            data["default_tcp_port"] = self.default_tcp_port
        return data

    @classmethod
    def from_dict(cls, name: str, data: Any) -> DeviceModel:
        """Build a model from its catalog entry.

        Raises:
            CatalogError: If the entry is not usable.
        """
        if not isinstance(data, dict):
            raise CatalogError(f"Entry {name!r} is not an object")
        driver = data.get("driver")
        if not isinstance(driver, str) or not driver:
            raise CatalogError(f"Entry {name!r} has no driver")

        delay = data.get("default_delay", DEFAULT_DELAY)
        if not is_valid_delay(delay):
            raise CatalogError(f"Entry {name!r} has invalid default_delay {delay!r}")
        port = data.get("default_tcp_port")
        if port is not None and not is_valid_port(port):
            raise CatalogError(f"Entry {name!r} has invalid default_tcp_port {port!r}")

        return cls(
            name=name,
            driver=driver,
            description=str(data.get("description", "")),
            default_delay=delay,
            default_tcp_port=port,
        )


# =============================================================================
# Device models
# =============================================================================


def bundled_device_models_text() -> str:
    """Return the text of the catalog shipped with the package."""
    return (
        files("telescope_control")
        .joinpath("data")
        .joinpath(DEVICE_MODELS_FILENAME)
        .read_text(encoding="utf-8")
    )


def parse_device_models(text: str) -> dict[str, DeviceModel]:
    """Parse a catalog document.

    Raises:
        CatalogError: If the document is not valid JSON, is not an object,
            or any entry is malformed.
    """
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise CatalogError(f"Invalid JSON: {e}") from e
    if not isinstance(document, dict):
        raise CatalogError("Catalog must be a JSON object")
    return {
        name: DeviceModel.from_dict(name, entry)
        for name, entry in sorted(document.items())
    }


def restore_default_device_models(path: Path) -> None:
    """Overwrite ``path`` with the bundled catalog.

    Raises:
        OSError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(bundled_device_models_text(), encoding="utf-8")
    logger.info("Restored default device catalog", path=str(path))


def load_device_models(path: Path) -> dict[str, DeviceModel]:
    """Load the device catalog from ``path``.

    A missing or unparseable file is replaced with the bundled default
    and read once more. If that also fails the catalog is empty.

    Args:
        path: Catalog file in the configuration directory.

    Returns:
        Models keyed by name, sorted by name.
    """
    for attempt in range(2):
        try:
            return parse_device_models(path.read_text(encoding="utf-8"))
        except (OSError, CatalogError) as e:
            if attempt:
                logger.error(
                    "Device catalog unusable after restore", path=str(path), error=str(e)
                )
                break
            logger.warning(
                "Device catalog missing or corrupt, restoring default",
                path=str(path),
                error=str(e),
            )
            try:
                restore_default_device_models(path)
            except OSError as restore_error:
                logger.error(
                    "Cannot restore device catalog",
                    path=str(path),
                    error=str(restore_error),
                )
                break
    return {}


# =============================================================================
# Third-party driver listing
# =============================================================================


def load_driver_listing(path: Path) -> dict[str, str]:
    """Read an INDI-style driver listing.

    Only devices in the "Telescopes" group are returned when the file
    groups its devices.

    Example file::

        <driversList>
          <devGroup group="Telescopes">
            <device label="LX200 Basic">
              <driver name="LX200 Basic">indi_lx200basic</driver>
            </device>
          </devGroup>
        </driversList>

    Args:
        path: Location of ``drivers.xml``.

    Returns:
        Mapping of device label to driver executable; empty if the file
        is missing or unreadable.
    """
    if not path.is_file():
        return {}
    try:
        root = ET.parse(path).getroot()
    except (OSError, ET.ParseError) as e:
        logger.warning("Cannot read driver listing", path=str(path), error=str(e))
        return {}

    groups = root.findall("devGroup")
    if groups:
        devices = [
            device
            for group in groups
            if group.get("group") == TELESCOPE_DRIVER_GROUP
            for device in group.iter("device")
        ]
    else:
        devices = list(root.iter("device"))

    listing: dict[str, str] = {}
    for device in devices:
        label = device.get("label")
        driver = device.find("driver")
        if not label or driver is None or not (driver.text or "").strip():
            continue
        listing[label] = driver.text.strip()
    return listing
