"""Single-instance guard for the sync loop.

A PID file in the mirror directory, created with ``O_CREAT | O_EXCL``.
A lock left behind by a dead process is taken over; a lock held by a
live process is a ``SetupError``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import psutil

from cursor_sync.errors import SetupError

logger = logging.getLogger(__name__)


def _read_pid(path: Path) -> int | None:
    try:
        return int(path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


class SingleInstanceLock:
    """Context manager holding the PID lock for this process.

    Args:
        path: The lock file (``<mirror>/.sync.lock``).
        pid: PID to record; defaults to the current process.
    """

    def __init__(self, path: Path, pid: int | None = None) -> None:
        self.path = path
        self.pid = pid if pid is not None else os.getpid()
        self._held = False

    def _create(self) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(f"{self.pid}\n")
        return True

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            SetupError: If another live process holds it.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self._create():
            self._held = True
            return

        owner = _read_pid(self.path)
        if owner is not None and owner != self.pid and psutil.pid_exists(owner):
            raise SetupError(
                f"Another cursor-sync instance (pid {owner}) is already "
                f"running against {self.path.parent}"
            )

        logger.warning("Removing stale lock %s (pid %s)", self.path, owner)
        self.path.unlink(missing_ok=True)
        if not self._create():
            raise SetupError(f"Could not acquire lock {self.path}")
        self._held = True

    def release(self) -> None:
        if not self._held:
            return
        if _read_pid(self.path) == self.pid:
            self.path.unlink(missing_ok=True)
        self._held = False

    def __enter__(self) -> SingleInstanceLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()
