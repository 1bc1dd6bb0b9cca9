"""Persistence of the acknowledged remote hash.

The marker file holds one line: the last commit id the operator has seen
(or that was auto-classified as whitespace-only).  Its modification time
doubles as the debounce clock for remote checks.

Key design choices:

* **Port + adapter** -- the drift detectors and reconciliation actions
  depend on the ``HashStore`` protocol only; ``FileHashStore`` is the disk
  implementation.
* **Atomic writes** -- ``write()`` goes through a temp file and
  ``os.replace()`` so a kill never leaves a truncated marker.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Protocol

from cursor_sync.file_handler import write_file

logger = logging.getLogger(__name__)


class HashStore(Protocol):
    """Read/write access to the AcknowledgedHash."""

    def read(self) -> str | None:
        """Return the acknowledged hash, or ``None`` if never written."""
        ...  # pragma: no cover

    def write(self, commit: str) -> None:
        """Persist *commit* as the acknowledged hash."""
        ...  # pragma: no cover

    def age(self) -> float | None:
        """Seconds since the hash was last written, or ``None``."""
        ...  # pragma: no cover


class FileHashStore:
    """``HashStore`` backed by a single-line marker file.

    Args:
        path: The marker file (``<mirror>/.last_hash``).
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> str | None:
        if not self.path.exists():
            return None
        value = self.path.read_text(encoding="utf-8").strip()
        return value or None

    def write(self, commit: str) -> None:
        commit = commit.strip()
        if not commit:
            raise ValueError("refusing to acknowledge an empty commit id")
        write_file(self.path, commit + "\n")
        logger.debug("Acknowledged hash is now %s", commit)

    def age(self) -> float | None:
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            return None
        return max(0.0, time.time() - mtime)

