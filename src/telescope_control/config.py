"""Configuration and the process-wide TelescopeControl instance.

ControlConfig holds every setting of the control core. The MCP tools and
the CLI reach the running TelescopeControl through the module-level
accessors:

    init_control(ControlConfig(config_dir=Path("/tmp/scopes")))
    control = get_control()
    ...
    shutdown_control()

Thread Safety:
    The accessors are not thread-safe. Initialize once at startup, on the
    thread that will run the scheduler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from telescope_control.catalog import DEVICE_MODELS_FILENAME, DRIVER_LISTING_FILENAME
from telescope_control.persistence import CONNECTIONS_FILENAME

if TYPE_CHECKING:
    from telescope_control.control import TelescopeControl

# =============================================================================
# Constants
# =============================================================================

DEFAULT_CONNECT_TIMEOUT = 10.0  # seconds in CONNECTING before ERROR
DEFAULT_COMMUNICATION_TIMEOUT = 30.0  # seconds CONNECTED without a message
DEFAULT_TICK_INTERVAL = 0.1  # seconds between scheduler ticks


def _default_config_dir() -> Path:
    """Return ~/.telescope-control, the default configuration directory."""
    return Path.home() / ".telescope-control"


@dataclass
class ControlConfig:
    """Settings of the telescope control core.

    Attributes:
        config_dir: Holds connections.json, device_models.json and the
            per-slot diagnostic logs.
        use_server_logs: Open a diagnostic log for every started slot.
        server_directory: Directory searched for telescope server
            executables before PATH. None searches PATH only.
        driver_listing: Third-party driver listing (drivers.xml); None
            uses the file in config_dir.
        connect_timeout: Seconds a client may stay CONNECTING. None
            disables the check.
        communication_timeout: Seconds a CONNECTED client may go without
            a message. None disables the check.
        tick_interval: Seconds between scheduler ticks in the server.
        autosave: Save descriptors after every administrative change.
    """

    config_dir: Path = field(default_factory=_default_config_dir)
    use_server_logs: bool = False
    server_directory: Path | None = None
    driver_listing: Path | None = None

    # Scheduler
    connect_timeout: float | None = DEFAULT_CONNECT_TIMEOUT
    communication_timeout: float | None = DEFAULT_COMMUNICATION_TIMEOUT
    tick_interval: float = DEFAULT_TICK_INTERVAL

    autosave: bool = True

    @property
    def connections_path(self) -> Path:
        return self.config_dir / CONNECTIONS_FILENAME

    @property
    def device_models_path(self) -> Path:
        return self.config_dir / DEVICE_MODELS_FILENAME

    @property
    def driver_listing_path(self) -> Path:
        if self.driver_listing is not None:
            return self.driver_listing
        return self.config_dir / DRIVER_LISTING_FILENAME


# =============================================================================
# Module-level instance
# =============================================================================

_control: TelescopeControl | None = None


def init_control(config: ControlConfig | None = None, **kwargs: Any) -> TelescopeControl:
    """Create the process-wide TelescopeControl and load its descriptors.

    Replaces (and shuts down) any previous instance.

    Args:
        config: Settings; defaults to ControlConfig().
        **kwargs: Passed to TelescopeControl (factory, clock, hooks).

    Returns:
        The new instance, also returned by get_control().
    """
    from telescope_control.control import TelescopeControl

    global _control
    if _control is not None:
        _control.shutdown()
    _control = TelescopeControl(config or ControlConfig(), **kwargs)
    _control.load_telescopes()
    return _control


def get_control() -> TelescopeControl:
    """Return the instance created by init_control().

    Raises:
        RuntimeError: If init_control() has not been called.
    """
    if _control is None:
        raise RuntimeError("Telescope control not initialized. Call init_control() first.")
    return _control


def shutdown_control() -> None:
    """Stop every client and drop the instance. Safe to call twice."""
    global _control
    if _control is not None:
        _control.shutdown()
        _control = None
