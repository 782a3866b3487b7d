"""Telescope client type definitions and protocols.

This module contains the state enum, position record, protocol and shared
base class for telescope clients. Concrete clients live in their own
modules and depend only on these definitions, never on each other
(except the spawned-process client, which wraps a TCP client).

Types defined here:
- ClientState: Connection state machine of one client instance
- Position: Last position report received from a telescope
- TelescopeClient: Protocol every client variant implements
- BaseTelescopeClient: State, position and logging shared by variants
- TelescopeClientError, ClientCreationError: Client exceptions

State machine:

    IDLE --connect()--> CONNECTING --position report--> CONNECTED
                            |                               |
                            +---------> ERROR <-------------+
                            +------> DISCONNECTED <---------+

ERROR and DISCONNECTED are terminal; a new client instance is needed to
talk to the telescope again.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from telescope_control.descriptor import Equinox
from telescope_control.observability import get_logger
from telescope_control.utils.coordinates import RaDec

if TYPE_CHECKING:
    from telescope_control.observability import DiagnosticLog

logger = get_logger(__name__)


class ClientState(Enum):
    """Connection state of a telescope client."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ClientState.DISCONNECTED, ClientState.ERROR)


@dataclass(frozen=True)
class Position:
    """Telescope position report.

    Attributes:
        coords: Reported coordinates, in the frame named by ``equinox``.
        equinox: Frame the telescope reports in.
        status: Device status code (0 = OK).
        device_time: Device timestamp in microseconds, None if the
            transport does not provide one.
        received_at: Monotonic time (seconds) of the scheduler tick that
            received the report.
    """

    coords: RaDec
    equinox: Equinox
    status: int
    device_time: int | None
    received_at: float

    def to_dict(self) -> dict[str, object]:
        return {
            **self.coords.to_dict(),
            "equinox": self.equinox.value,
            "status": self.status,
            "device_time": self.device_time,
            "received_at": self.received_at,
        }


class TelescopeClientError(Exception):
    """Base exception for telescope client failures."""


class ClientCreationError(TelescopeClientError):
    """Raised when a client cannot be constructed for a descriptor."""


@runtime_checkable
class TelescopeClient(Protocol):  # pragma: no cover
    """Capability contract of every telescope client variant.

    All methods are called from the control thread and must return
    without blocking on I/O.
    """

    @property
    def name(self) -> str:
        """Display name of the telescope."""
        ...

    @property
    def state(self) -> ClientState:
        """Current connection state."""
        ...

    @property
    def last_communication(self) -> float | None:
        """Monotonic time of the last message received, None if none yet."""
        ...

    def connect(self, now: float) -> None:
        """Begin establishing the transport and return immediately.

        The outcome is observed through ``state`` on later steps.
        Calling it on a client that is not IDLE does nothing.
        """
        ...

    def communication_step(self, now: float) -> None:
        """Service the transport once without blocking.

        Reads whatever input is available, updates the position on valid
        reports (moving to CONNECTED), writes pending output, and moves to
        ERROR on malformed input or transport failure, or DISCONNECTED on
        an orderly close. With no input available nothing changes.
        """
        ...

    def send_goto(self, target: RaDec, equinox: Equinox) -> bool:
        """Queue a slew to ``target`` given in frame ``equinox``.

        Returns:
            True if the command was accepted, False if the client is not
            CONNECTED (logged, never raised).
        """
        ...

    def current_position(self) -> Position | None:
        """Return the most recent position report, None if no data yet."""
        ...

    def fail(self, reason: str) -> None:
        """Move to ERROR and release the transport; no-op when terminal."""
        ...

    def close(self) -> None:
        """Release the transport. Idempotent."""
        ...


class BaseTelescopeClient:
    """State bookkeeping shared by the client variants.

    Subclasses implement ``connect``, ``communication_step``, ``send_goto``
    and ``close`` and report events through the ``_set_*`` helpers, which
    keep the state machine and its logging in one place.
    """

    def __init__(
        self,
        name: str,
        equinox: Equinox = Equinox.J2000,
        log: DiagnosticLog | None = None,
    ) -> None:
        self._name = name
        self._equinox = equinox
        self._log = log
        self._state = ClientState.IDLE
        self._position: Position | None = None
        self._last_communication: float | None = None
        self._connect_started: float | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ClientState.CONNECTED

    @property
    def last_communication(self) -> float | None:
        return self._last_communication

    @property
    def connect_started(self) -> float | None:
        """Monotonic time connect() was called, None before that."""
        return self._connect_started

    def current_position(self) -> Position | None:
        return self._position

    def fail(self, reason: str) -> None:
        """Move to ERROR and release the transport.

        Used by the variants on transport failures and by the scheduler
        on timeouts. Has no effect on a terminal client.
        """
        if self._state.is_terminal:
            return
        logger.warning("Telescope client error", name=self._name, reason=reason)
        self._diagnostic("Client error", reason=reason)
        self._state = ClientState.ERROR
        self._release()

    # -------------------------------------------------------------------------
    # Helpers for subclasses
    # -------------------------------------------------------------------------

    def _start_connecting(self, now: float) -> bool:
        """Move IDLE -> CONNECTING; False if the client was not IDLE."""
        if self._state is not ClientState.IDLE:
            return False
        self._state = ClientState.CONNECTING
        self._connect_started = now
        return True

    def _set_position(
        self,
        coords: RaDec,
        now: float,
        status: int = 0,
        device_time: int | None = None,
    ) -> None:
        """Record a valid position report and mark the client connected."""
        if self._state.is_terminal:
            return
        self._position = Position(
            coords=coords,
            equinox=self._equinox,
            status=status,
            device_time=device_time,
            received_at=now,
        )
        self._last_communication = now
        if self._state is not ClientState.CONNECTED:
            logger.info("Telescope client connected", name=self._name)
            self._state = ClientState.CONNECTED

    def _set_disconnected(self, reason: str) -> None:
        if self._state.is_terminal:
            return
        logger.info("Telescope client disconnected", name=self._name, reason=reason)
        self._diagnostic("Disconnected", reason=reason)
        self._state = ClientState.DISCONNECTED
        self._release()

    def _reject_goto(self, target: RaDec) -> bool:
        """Log a goto refused because the client is not connected."""
        logger.warning(
            "Goto ignored, telescope not connected",
            name=self._name,
            state=self._state.value,
            ra=round(target.ra, 5),
            dec=round(target.dec, 5),
        )
        return False

    def _diagnostic(self, message: str, **data: object) -> None:
        if self._log is not None:
            self._log.write(message, **data)

    def _release(self) -> None:
        """Release transport resources. Must be idempotent."""
