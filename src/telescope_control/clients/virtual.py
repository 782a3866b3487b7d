"""Virtual telescope client.

Simulates a mount without any transport: every communication step it
reports a position that moves a fixed fraction of the remaining angle
towards the last goto target, along a great circle. Used for
demonstrations and for testing hosts without hardware.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from telescope_control.clients.types import BaseTelescopeClient, ClientState
from telescope_control.descriptor import Equinox
from telescope_control.observability import get_logger
from telescope_control.utils.coordinates import RaDec, radec_to_vector, vector_to_radec

if TYPE_CHECKING:
    from telescope_control.observability import DiagnosticLog

logger = get_logger(__name__)

# Fraction of the remaining angle covered per step
SLEW_FRACTION = 1.0 / 32.0

_POLE = np.array([0.0, 0.0, 1.0])
_EQUINOX_POINT = np.array([1.0, 0.0, 0.0])


def slew_step(pointing: np.ndarray, target: np.ndarray, fraction: float) -> np.ndarray:
    """Rotate ``pointing`` towards ``target`` by ``fraction`` of the angle between them.

    Both are unit vectors; the result moves along the great circle through
    them. An antipodal target has no unique great circle, so the slew
    starts through the north pole (or through RA 0 when pointing at a
    pole).
    """
    cos_angle = float(np.clip(np.dot(pointing, target), -1.0, 1.0))
    angle = np.arccos(cos_angle)
    if angle < 1e-12:
        return target.copy()

    towards = target - cos_angle * pointing
    norm = np.linalg.norm(towards)
    if norm < 1e-9:
        towards = _POLE - np.dot(_POLE, pointing) * pointing
        norm = np.linalg.norm(towards)
        if norm < 1e-9:
            towards = _EQUINOX_POINT - np.dot(_EQUINOX_POINT, pointing) * pointing
            norm = np.linalg.norm(towards)
    towards = towards / norm

    step = angle * fraction
    moved = np.cos(step) * pointing + np.sin(step) * towards
    return moved / np.linalg.norm(moved)


class VirtualTelescopeClient(BaseTelescopeClient):
    """Simulated telescope that slews smoothly towards goto targets."""

    def __init__(
        self,
        name: str,
        equinox: Equinox = Equinox.J2000,
        log: DiagnosticLog | None = None,
        start: RaDec | None = None,
    ) -> None:
        super().__init__(name, equinox, log)
        start = start or RaDec(ra=0.0, dec=0.0)
        self._pointing = radec_to_vector(start)
        self._target = self._pointing.copy()

    def connect(self, now: float) -> None:
        if self._start_connecting(now):
            logger.debug("Virtual telescope started", name=self.name)

    def communication_step(self, now: float) -> None:
        if self.state not in (ClientState.CONNECTING, ClientState.CONNECTED):
            return

        self._pointing = slew_step(self._pointing, self._target, SLEW_FRACTION)
        self._set_position(vector_to_radec(self._pointing), now)

    def send_goto(self, target: RaDec, equinox: Equinox) -> bool:
        if not self.is_connected:
            return self._reject_goto(target)
        self._target = radec_to_vector(target)
        self._diagnostic("Goto", ra=target.ra, dec=target.dec, equinox=equinox.value)
        return True

    def close(self) -> None:
        if not self.state.is_terminal:
            self._set_disconnected("closed")
