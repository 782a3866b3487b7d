"""Load and save the slot descriptors file.

The file is a JSON object keyed by slot number, plus a format version::

    {
        "version": "0.4.1",
        "3": {"name": "Dob", "connection": "serial", "serial_port": "COM1", ...}
    }

Saving writes a temporary file next to the target and replaces the target
with it, so a crash mid-write never leaves a truncated file. Loading never
raises: a missing or unreadable file yields no descriptors, and broken
entries are skipped one by one.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from telescope_control.descriptor import (
    DescriptorError,
    TelescopeDescriptor,
    is_valid_slot,
)
from telescope_control.observability import get_logger

logger = get_logger(__name__)

FILE_VERSION = "0.4.1"
VERSION_KEY = "version"
CONNECTIONS_FILENAME = "connections.json"


def _parse_slot(key: str) -> int | None:
    try:
        slot = int(key)
    except ValueError:
        return None
    return slot if is_valid_slot(slot) and str(slot) == key else None


def load_descriptors(path: Path) -> dict[int, TelescopeDescriptor]:
    """Read the descriptors file.

    Args:
        path: File to read.

    Returns:
        Descriptors keyed by slot. Entries with an invalid slot key or an
        unusable structure are skipped with a warning. Entries that parse
        but fail validate() are kept, with a warning, and refused later by
        start_telescope_at_slot. A missing or unparseable file gives an
        empty dict.
    """
    if not path.exists():
        logger.info("No descriptors file, starting empty", path=str(path))
        return {}

    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Cannot read descriptors file", path=str(path), error=str(e))
        return {}
    if not isinstance(document, dict):
        logger.warning("Descriptors file is not a JSON object", path=str(path))
        return {}

    version = document.get(VERSION_KEY)
    if version != FILE_VERSION:
        logger.info("Descriptors file version differs", found=version, expected=FILE_VERSION)

    descriptors: dict[int, TelescopeDescriptor] = {}
    for key, entry in document.items():
        if key == VERSION_KEY:
            continue
        slot = _parse_slot(key)
        if slot is None:
            logger.warning("Skipping entry with invalid slot", key=key)
            continue
        try:
            descriptor = TelescopeDescriptor.from_dict(entry)
        except DescriptorError as e:
            logger.warning("Skipping unreadable descriptor", slot=slot, error=str(e))
            continue
        problems = descriptor.validate()
        if problems:
            logger.warning("Loaded invalid descriptor", slot=slot, problems=problems)
        descriptors[slot] = descriptor

    logger.info("Loaded descriptors", path=str(path), count=len(descriptors))
    return dict(sorted(descriptors.items()))


def save_descriptors(path: Path, descriptors: Mapping[int, TelescopeDescriptor]) -> None:
    """Write ``descriptors`` to ``path`` atomically.

    Raises:
        OSError: If the file cannot be written. The previous file, if
            any, is left untouched.
    """
    document: dict[str, Any] = {VERSION_KEY: FILE_VERSION}
    for slot in sorted(descriptors):
        document[str(slot)] = descriptors[slot].to_dict()

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=4)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info("Saved descriptors", path=str(path), count=len(descriptors))
