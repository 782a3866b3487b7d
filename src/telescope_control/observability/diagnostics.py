"""Per-slot diagnostic logs.

A DiagnosticLog is an append-only text file bound to one active slot.
It is a ``logging.FileHandler`` attached to the slot's own child logger
(``telescope_control.slots.<slot>``). The slot logger does not propagate,
so raw device traffic stays out of the main log output.

Example:
    log = DiagnosticLog.open(3, Path("~/.telescope-control").expanduser())
    log.write("Sent goto", ra_hours=5.5, dec_degrees=-5.4)
    log.close()
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from telescope_control.observability.logging import (
    ROOT_LOGGER_NAME,
    StructuredFormatter,
    StructuredLogger,
    get_logger,
)

LOG_FILE_TEMPLATE = "log_TelescopeServer{slot}.txt"


def diagnostic_log_path(directory: Path, slot: int) -> Path:
    """Return the diagnostic log file path for a slot."""
    return directory / LOG_FILE_TEMPLATE.format(slot=slot)


class DiagnosticLog:
    """Append-only diagnostic text sink for one slot.

    Attributes:
        slot: Slot number the log belongs to.
        path: File the log appends to.
    """

    def __init__(self, slot: int, path: Path) -> None:
        """Open ``path`` for appending and attach it to the slot logger.

        Raises:
            OSError: If the file cannot be opened.
        """
        self.slot = slot
        self.path = path
        self._logger: StructuredLogger = get_logger(
            f"{ROOT_LOGGER_NAME}.slots.{slot}"
        )

        path.parent.mkdir(parents=True, exist_ok=True)
        self._handler: logging.FileHandler | None = logging.FileHandler(
            path, mode="a", encoding="utf-8"
        )
        self._handler.setLevel(logging.DEBUG)
        self._handler.setFormatter(
            StructuredFormatter(fmt="%(asctime)s %(levelname)s %(message)s")
        )
        self._logger.addHandler(self._handler)
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False

    @classmethod
    def open(cls, slot: int, directory: Path) -> DiagnosticLog:
        """Open the standard log file for ``slot`` inside ``directory``."""
        return cls(slot, diagnostic_log_path(directory, slot))

    @property
    def is_open(self) -> bool:
        """True until close() is called."""
        return self._handler is not None

    def write(self, message: str, **data: Any) -> None:
        """Append one line; ignored after close()."""
        if self._handler is None:
            return
        self._logger.debug(message, **data)

    def close(self) -> None:
        """Detach and close the file handler. Safe to call twice."""
        if self._handler is None:
            return
        self._logger.removeHandler(self._handler)
        self._handler.close()
        self._handler = None
