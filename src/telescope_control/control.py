"""Telescope control: slot lifecycle, communication scheduler and gotos.

TelescopeControl is the single entry point of the core. It owns the slot
registry and implements, on top of it:

- Administration: add, get, remove and list descriptors, with autosave
- Lifecycle: start and stop the client of a slot, stop all
- Scheduling: ``update()`` services every active client once per tick
- Dispatch: goto by slot with equinox conversion, position queries
- Catalog access: device models and third-party driver listing

Every method runs on the control thread and returns without blocking on
I/O. Failures are reported as ControlResult values or logged; nothing
raised by a client or a hook escapes ``update()``.

Example:
    control = TelescopeControl(ControlConfig(config_dir=tmp_path))
    control.add_telescope_at_slot(1, TelescopeDescriptor("Sim", ConnectionKind.VIRTUAL))
    control.start_telescope_at_slot(1)
    control.update(0.1)
    control.telescope_goto(1, RaDec.from_hours(5.5, -5.4))
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from telescope_control.catalog import DeviceModel, load_device_models, load_driver_listing
from telescope_control.clients import (
    ClientCreationError,
    ClientFactory,
    ClientState,
    Position,
    TelescopeClient,
)
from telescope_control.config import ControlConfig
from telescope_control.descriptor import Equinox, TelescopeDescriptor, is_valid_slot
from telescope_control.observability import DiagnosticLog, LogContext, get_logger
from telescope_control.persistence import load_descriptors, save_descriptors
from telescope_control.registry import SlotRegistry
from telescope_control.utils.coordinates import (
    RaDec,
    j2000_to_jnow,
    jnow_to_j2000,
    vector_to_radec,
)

logger = get_logger(__name__)


class Clock(Protocol):  # pragma: no cover
    """Time source for the scheduler (injectable for testing)."""

    def monotonic(self) -> float:
        """Return monotonic time in seconds."""
        ...


class SystemClock:
    """Clock backed by time.monotonic()."""

    def monotonic(self) -> float:
        return time.monotonic()


SlotCallback = Callable[[int, str], None]


@dataclass
class ControlHooks:
    """Optional callbacks for client state changes.

    Each fires once per transition, from inside ``update()``.

    Attributes:
        on_client_connected: (slot, name) when a client first reaches
            CONNECTED.
        on_client_disconnected: (slot, name) when a client reaches ERROR
            or DISCONNECTED. The slot is stopped right after.
    """

    on_client_connected: SlotCallback | None = None
    on_client_disconnected: SlotCallback | None = None


@dataclass(frozen=True)
class ControlResult:
    """Outcome of an administrative or dispatch operation.

    Truthy on success, so ``if control.start_telescope_at_slot(3):`` reads
    naturally.
    """

    success: bool
    message: str = ""

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, message: str = "") -> ControlResult:
        return cls(True, message)

    @classmethod
    def failure(cls, message: str) -> ControlResult:
        return cls(False, message)


def _invalid_slot(slot: object) -> ControlResult:
    return ControlResult.failure(f"Invalid slot number: {slot!r}")


class TelescopeControl:
    """Manages telescope slots and the clients running for them.

    Thread Safety:
        Not thread-safe. All calls must come from the thread that calls
        ``update()``.
    """

    def __init__(
        self,
        config: ControlConfig | None = None,
        factory: ClientFactory | None = None,
        clock: Clock | None = None,
        hooks: ControlHooks | None = None,
        registry: SlotRegistry | None = None,
    ) -> None:
        """Create the control core. Nothing is loaded or started.

        Args:
            config: Settings; defaults to ControlConfig().
            factory: Client factory; the default uses real serial ports
                and processes, searching ``config.server_directory``.
            clock: Time source for the scheduler.
            hooks: Connection notifications.
            registry: Slot storage, mainly for tests.
        """
        self.config = config or ControlConfig()
        self.registry = registry or SlotRegistry()
        self.clock = clock or SystemClock()
        self.hooks = hooks or ControlHooks()
        self.factory = factory or ClientFactory(
            server_directory=self.config.server_directory,
            device_models=self.get_device_models,
        )
        self._use_server_logs = self.config.use_server_logs
        self._started_at: dict[int, float] = {}
        self._announced: set[int] = set()
        self._device_models: dict[str, DeviceModel] | None = None
        self._driver_listing: dict[str, str] | None = None

    # =========================================================================
    # Settings
    # =========================================================================

    @property
    def use_server_logs(self) -> bool:
        """Whether slots started from now on get a diagnostic log."""
        return self._use_server_logs

    @use_server_logs.setter
    def use_server_logs(self, enabled: bool) -> None:
        self._use_server_logs = enabled
        logger.info("Server logs setting changed", enabled=enabled)

    # =========================================================================
    # Administration
    # =========================================================================

    def add_telescope_at_slot(
        self, slot: int, descriptor: TelescopeDescriptor
    ) -> ControlResult:
        """Store ``descriptor`` at ``slot``, replacing any previous one.

        Only the slot number is checked. Descriptor contents are validated
        when the slot is started. A client already running at the slot
        keeps running with its old settings.
        """
        if not self.registry.add(slot, descriptor):
            return _invalid_slot(slot)
        logger.info(
            "Telescope added",
            slot=slot,
            name=descriptor.name,
            connection=descriptor.connection.value,
        )
        return self._autosave(
            ControlResult.ok(f"Telescope {descriptor.name!r} stored at slot {slot}")
        )

    def get_telescope_at_slot(self, slot: int) -> TelescopeDescriptor | None:
        """Return the descriptor at ``slot``, None if empty or invalid."""
        return self.registry.get(slot)

    def get_telescopes(self) -> dict[int, TelescopeDescriptor]:
        """Return every stored descriptor, by slot."""
        return self.registry.descriptors()

    def remove_telescope_at_slot(self, slot: int) -> ControlResult:
        """Stop the client at ``slot`` if any, then delete its descriptor."""
        if not is_valid_slot(slot):
            return _invalid_slot(slot)
        if self.registry.get(slot) is None:
            return ControlResult.failure(f"No telescope at slot {slot}")

        stopped = self.stop_telescope_at_slot(slot)
        self.registry.remove(slot)
        logger.info("Telescope removed", slot=slot)
        if not stopped:
            return ControlResult.failure(
                f"Telescope at slot {slot} removed, but stopping it failed: {stopped.message}"
            )
        return self._autosave(ControlResult.ok(f"Telescope at slot {slot} removed"))

    def delete_all_telescopes(self) -> ControlResult:
        """Stop every client and delete every descriptor."""
        stopped = self.stop_all_telescopes()
        self.registry.clear()
        logger.info("All telescopes deleted")
        if not stopped:
            return stopped
        return self._autosave(ControlResult.ok("All telescopes deleted"))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_telescope_at_slot(self, slot: int) -> ControlResult:
        """Create, register and connect the client for ``slot``.

        Fails without touching the registry when the slot is invalid or
        empty, already has a client, holds an invalid descriptor, or the
        client cannot be created (unopenable port, missing executable,
        spawn failure).
        """
        if not is_valid_slot(slot):
            return _invalid_slot(slot)
        descriptor = self.registry.get(slot)
        if descriptor is None:
            return ControlResult.failure(f"No telescope at slot {slot}")
        if self.registry.has_client(slot):
            return ControlResult.failure(f"Telescope at slot {slot} is already running")

        with LogContext(slot=slot):
            problems = descriptor.validate()
            if problems:
                logger.warning("Not starting invalid telescope", problems=problems)
                return ControlResult.failure(
                    f"Invalid telescope at slot {slot}: {'; '.join(problems)}"
                )

            log = self._open_log(slot)
            try:
                client = self.factory.create(slot, descriptor, log)
            except ClientCreationError as e:
                logger.error("Cannot start telescope", name=descriptor.name, error=str(e))
                if log is not None:
                    log.close()
                return ControlResult.failure(f"Cannot start telescope at slot {slot}: {e}")

            self.registry.set_client(slot, client)
            if log is not None:
                self.registry.set_log(slot, log)
            now = self.clock.monotonic()
            self._started_at[slot] = now
            try:
                client.connect(now)
            except Exception as e:
                logger.exception("Client connect raised", name=descriptor.name)
                client.fail(f"connect failed: {e}")

            logger.info(
                "Telescope started",
                name=descriptor.name,
                connection=descriptor.connection.value,
            )
        return ControlResult.ok(f"Telescope {descriptor.name!r} started at slot {slot}")

    def stop_telescope_at_slot(self, slot: int) -> ControlResult:
        """Close and unregister the client at ``slot``.

        Stopping a slot without a client succeeds. The transport, any
        server process and the diagnostic log are released before this
        returns.
        """
        if not is_valid_slot(slot):
            return _invalid_slot(slot)

        client = self.registry.pop_client(slot)
        log = self.registry.pop_log(slot)
        self._started_at.pop(slot, None)
        self._announced.discard(slot)

        error: Exception | None = None
        if client is not None:
            try:
                client.close()
            except Exception as e:
                logger.exception("Error closing telescope client", slot=slot)
                error = e
            else:
                logger.info("Telescope stopped", slot=slot, name=client.name)
        if log is not None:
            log.close()

        if error is not None:
            return ControlResult.failure(f"Error stopping slot {slot}: {error}")
        return ControlResult.ok(f"Slot {slot} stopped")

    def stop_all_telescopes(self) -> ControlResult:
        """Stop every active slot; failures are collected, not short-circuited."""
        failures = [
            result.message
            for result in (
                self.stop_telescope_at_slot(slot) for slot in self.registry.active_slots()
            )
            if not result
        ]
        if failures:
            return ControlResult.failure("; ".join(failures))
        return ControlResult.ok("All telescopes stopped")

    def is_existing_client_at_slot(self, slot: int) -> bool:
        """True if a client is active at ``slot`` in any state."""
        return self.registry.has_client(slot)

    def is_connected_client_at_slot(self, slot: int) -> bool:
        client = self.registry.client(slot)
        return client is not None and client.state is ClientState.CONNECTED

    def get_client_at_slot(self, slot: int) -> TelescopeClient | None:
        return self.registry.client(slot)

    def get_connected_clients_names(self) -> dict[int, str]:
        """Names of connected clients, by slot."""
        return {
            slot: client.name
            for slot in self.registry.active_slots()
            if (client := self.registry.client(slot)) is not None
            and client.state is ClientState.CONNECTED
        }

    def get_active_clients_names(self) -> dict[int, str]:
        """Names of all active clients regardless of state, by slot."""
        return {
            slot: client.name
            for slot in self.registry.active_slots()
            if (client := self.registry.client(slot)) is not None
        }

    def shutdown(self) -> None:
        """Stop every client. Descriptors are kept."""
        result = self.stop_all_telescopes()
        if not result:
            logger.warning("Shutdown incomplete", error=result.message)

    # =========================================================================
    # Scheduler
    # =========================================================================

    def update(self, delta_time: float = 0.0) -> None:
        """Run one scheduler tick.

        Services every active client in slot order, applies the connect
        and communication timeouts, fires connection hooks and stops slots
        whose client ended in ERROR or DISCONNECTED.

        Args:
            delta_time: Seconds since the previous tick as seen by the
                host. Timing decisions use the injected clock instead.
        """
        now = self.clock.monotonic()
        finished: list[tuple[int, str]] = []

        for slot in self.registry.active_slots():
            client = self.registry.client(slot)
            if client is None:
                continue
            with LogContext(slot=slot):
                self._service(slot, client, now)
                state = client.state
                if state is ClientState.CONNECTED and slot not in self._announced:
                    self._announced.add(slot)
                    self._notify(self.hooks.on_client_connected, slot, client.name)
                elif state.is_terminal:
                    finished.append((slot, client.name))

        for slot, name in finished:
            logger.info("Telescope client ended", slot=slot, name=name)
            self._notify(self.hooks.on_client_disconnected, slot, name)
            self.stop_telescope_at_slot(slot)

    def _service(self, slot: int, client: TelescopeClient, now: float) -> None:
        """Run one communication step and check timeouts for ``client``."""
        try:
            client.communication_step(now)
        except Exception as e:
            logger.exception("Communication step raised", name=client.name)
            self._fail(client, f"communication step raised: {e}")
            return

        state = client.state
        timeout = self.config.connect_timeout
        if state is ClientState.CONNECTING and timeout is not None:
            started = self._started_at.get(slot, now)
            if now - started > timeout:
                self._fail(client, f"no position report within {timeout:g} s of connecting")
            return

        timeout = self.config.communication_timeout
        if state is ClientState.CONNECTED and timeout is not None:
            last = client.last_communication
            if last is not None and now - last > timeout:
                self._fail(client, f"no message for {timeout:g} s")

    @staticmethod
    def _fail(client: TelescopeClient, reason: str) -> None:
        try:
            client.fail(reason)
        except Exception:
            logger.exception("Error failing telescope client", name=client.name)

    @staticmethod
    def _notify(callback: SlotCallback | None, slot: int, name: str) -> None:
        if callback is None:
            return
        try:
            callback(slot, name)
        except Exception:
            logger.exception("Telescope hook raised", slot=slot, name=name)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def telescope_goto(self, slot: int, target: RaDec) -> ControlResult:
        """Send the telescope at ``slot`` to ``target`` (J2000).

        The target is precessed to the current epoch first when the slot's
        descriptor uses JNow.
        """
        if not is_valid_slot(slot):
            return _invalid_slot(slot)
        client = self.registry.client(slot)
        if client is None:
            return ControlResult.failure(f"No active telescope at slot {slot}")

        descriptor = self.registry.get(slot)
        equinox = descriptor.equinox if descriptor is not None else Equinox.J2000
        coords = j2000_to_jnow(target) if equinox is Equinox.JNOW else target

        with LogContext(slot=slot):
            if not client.send_goto(coords, equinox):
                return ControlResult.failure(
                    f"Telescope at slot {slot} is not connected ({client.state.value})"
                )
            logger.info(
                "Goto sent",
                name=client.name,
                ra_hours=round(coords.ra_hours, 5),
                dec=round(coords.dec, 5),
                equinox=equinox.value,
            )
        return ControlResult.ok(f"Goto sent to {client.name!r}")

    def telescope_goto_vector(
        self, slot: int, vector: np.ndarray | Sequence[float]
    ) -> ControlResult:
        """Goto given as a J2000 direction vector (need not be normalized)."""
        if not is_valid_slot(slot):
            return _invalid_slot(slot)
        try:
            target = vector_to_radec(np.asarray(vector, dtype=float))
        except ValueError as e:
            return ControlResult.failure(f"Invalid direction vector: {e}")
        return self.telescope_goto(slot, target)

    def get_position(self, slot: int) -> Position | None:
        """Latest report of the client at ``slot``, in its own frame."""
        client = self.registry.client(slot)
        return client.current_position() if client is not None else None

    def get_position_j2000(self, slot: int) -> RaDec | None:
        """Latest reported position converted to J2000, None if no data yet."""
        position = self.get_position(slot)
        if position is None:
            return None
        if position.equinox is Equinox.JNOW:
            return jnow_to_j2000(position.coords)
        return position.coords

    # =========================================================================
    # Persistence
    # =========================================================================

    def load_telescopes(self) -> ControlResult:
        """Replace all descriptors with the saved ones and auto-start.

        Every running client is stopped first. A missing or unreadable
        file leaves the registry empty.
        """
        self.stop_all_telescopes()
        descriptors = load_descriptors(self.config.connections_path)
        self.registry.replace_all(descriptors)

        failures = []
        for slot, descriptor in descriptors.items():
            if descriptor.connect_at_startup:
                result = self.start_telescope_at_slot(slot)
                if not result:
                    failures.append(result.message)

        if failures:
            return ControlResult.failure("; ".join(failures))
        return ControlResult.ok(f"Loaded {len(descriptors)} telescope(s)")

    def save_telescopes(self) -> ControlResult:
        """Write every descriptor to the connections file."""
        path = self.config.connections_path
        try:
            save_descriptors(path, self.registry.descriptors())
        except OSError as e:
            logger.error("Cannot save telescopes", path=str(path), error=str(e))
            return ControlResult.failure(f"Cannot save telescopes: {e}")
        return ControlResult.ok(f"Saved to {path}")

    def _autosave(self, result: ControlResult) -> ControlResult:
        if not self.config.autosave:
            return result
        saved = self.save_telescopes()
        return result if saved else ControlResult.failure(f"{result.message}, but {saved.message}")

    # =========================================================================
    # Catalog
    # =========================================================================

    def get_device_models(self) -> dict[str, DeviceModel]:
        """Device catalog, read on first use."""
        if self._device_models is None:
            self._device_models = load_device_models(self.config.device_models_path)
        return self._device_models

    def reload_device_models(self) -> dict[str, DeviceModel]:
        self._device_models = None
        return self.get_device_models()

    def get_driver_listing(self) -> dict[str, str]:
        """Third-party driver listing, read on first use."""
        if self._driver_listing is None:
            self._driver_listing = load_driver_listing(self.config.driver_listing_path)
        return self._driver_listing

    # =========================================================================
    # Internals
    # =========================================================================

    def _open_log(self, slot: int) -> DiagnosticLog | None:
        if not self._use_server_logs:
            return None
        try:
            return DiagnosticLog.open(slot, self.config.config_dir)
        except OSError as e:
            logger.warning("Cannot open diagnostic log", error=str(e))
            return None
