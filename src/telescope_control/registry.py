"""Slot registry: descriptors, live clients and diagnostic logs by slot.

The registry keeps three maps keyed by slot number:

- descriptors: persisted configuration, independent of running clients
- clients: the live TelescopeClient of every started slot
- logs: the DiagnosticLog of started slots when logging is enabled

It only stores and range-checks. Starting, stopping and validating
descriptor contents belong to TelescopeControl; in particular ``remove()``
drops the descriptor and leaves any live client in place.

Example:
    registry = SlotRegistry()
    registry.add(3, TelescopeDescriptor("Dob", ConnectionKind.VIRTUAL))
    registry.get(3).name        # 'Dob'
    registry.get(4)             # None
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from telescope_control.descriptor import TelescopeDescriptor, is_valid_slot
from telescope_control.observability import get_logger

if TYPE_CHECKING:
    from telescope_control.clients.types import TelescopeClient
    from telescope_control.observability import DiagnosticLog

logger = get_logger(__name__)


class SlotRegistry:
    """Slot-indexed storage for descriptors, clients and logs.

    Thread Safety:
        Not thread-safe. Owned by the control thread; other threads must
        marshal calls onto it.
    """

    def __init__(self) -> None:
        self._descriptors: dict[int, TelescopeDescriptor] = {}
        self._clients: dict[int, TelescopeClient] = {}
        self._logs: dict[int, DiagnosticLog] = {}

    # -------------------------------------------------------------------------
    # Descriptors
    # -------------------------------------------------------------------------

    def add(self, slot: int, descriptor: TelescopeDescriptor) -> bool:
        """Store ``descriptor`` at ``slot``, replacing any previous one.

        Does not validate the descriptor's fields.

        Returns:
            False if the slot number is out of range, True otherwise.
        """
        if not is_valid_slot(slot):
            logger.warning("Rejected descriptor for invalid slot", slot=slot)
            return False
        self._descriptors[slot] = descriptor
        return True

    def get(self, slot: int) -> TelescopeDescriptor | None:
        """Return the descriptor at ``slot`` or None if empty or invalid."""
        if not is_valid_slot(slot):
            return None
        return self._descriptors.get(slot)

    def remove(self, slot: int) -> bool:
        """Delete the descriptor at ``slot``.

        A client running at the slot is not stopped.

        Returns:
            True if a descriptor was removed.
        """
        if not is_valid_slot(slot):
            logger.warning("Rejected removal for invalid slot", slot=slot)
            return False
        return self._descriptors.pop(slot, None) is not None

    def replace_all(self, descriptors: dict[int, TelescopeDescriptor]) -> None:
        """Replace every descriptor; entries with invalid slots are dropped."""
        self._descriptors = {
            slot: descriptor
            for slot, descriptor in descriptors.items()
            if is_valid_slot(slot)
        }

    def clear(self) -> None:
        """Remove every descriptor."""
        self._descriptors.clear()

    def descriptors(self) -> dict[int, TelescopeDescriptor]:
        """Return a slot-ordered copy of the descriptor map."""
        return dict(sorted(self._descriptors.items()))

    def occupied_slots(self) -> list[int]:
        """Slots holding a descriptor, ascending."""
        return sorted(self._descriptors)

    # -------------------------------------------------------------------------
    # Live clients and logs
    # -------------------------------------------------------------------------

    def client(self, slot: int) -> TelescopeClient | None:
        """Return the live client at ``slot``, if any."""
        if not is_valid_slot(slot):
            return None
        return self._clients.get(slot)

    def has_client(self, slot: int) -> bool:
        return self.client(slot) is not None

    def set_client(self, slot: int, client: TelescopeClient) -> None:
        """Register a live client. The slot must be valid and free."""
        if not is_valid_slot(slot):
            raise ValueError(f"Invalid slot number: {slot!r}")
        if slot in self._clients:
            raise ValueError(f"Slot {slot} already has an active client")
        self._clients[slot] = client

    def pop_client(self, slot: int) -> TelescopeClient | None:
        return self._clients.pop(slot, None)

    def active_slots(self) -> list[int]:
        """Slots with a live client, ascending."""
        return sorted(self._clients)

    def log(self, slot: int) -> DiagnosticLog | None:
        return self._logs.get(slot)

    def set_log(self, slot: int, log: DiagnosticLog) -> None:
        self._logs[slot] = log

    def pop_log(self, slot: int) -> DiagnosticLog | None:
        return self._logs.pop(slot, None)
