"""Editor backend: running-process detection and the extension CLI."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Protocol, Sequence

import psutil

from cursor_sync.errors import SyncError

logger = logging.getLogger(__name__)

_CLI_TIMEOUT = 300


class ExtensionBackend(Protocol):
    """Editor capabilities consumed by the reconciliation actions."""

    def available(self) -> bool: ...  # pragma: no cover

    def is_running(self) -> bool: ...  # pragma: no cover

    def list_installed(self) -> list[str]: ...  # pragma: no cover

    def install(self, identifier: str) -> None: ...  # pragma: no cover


class EditorExtensions:
    """Drives the editor executable's ``--list-extensions`` and
    ``--install-extension`` switches.

    Args:
        binary: The editor executable.
        process_names: Process names (case-insensitive) that mean the
            editor is running.
    """

    def __init__(self, binary: Path, process_names: Sequence[str]) -> None:
        self.binary = binary
        self.process_names = {name.lower() for name in process_names}
        self._binary_norm = os.path.normcase(str(binary))

    def available(self) -> bool:
        """True when the editor executable exists."""
        return self.binary.is_file()

    def is_running(self) -> bool:
        """Scan the process table for the editor."""
        for proc in psutil.process_iter(attrs=["name", "exe"]):
            try:
                name = (proc.info.get("name") or "").lower()
                exe = os.path.normcase(proc.info.get("exe") or "")
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
            if name in self.process_names:
                return True
            if exe and exe == self._binary_norm:
                return True
        return False

    def _cli(self, *args: str) -> subprocess.CompletedProcess:
        try:
            result = subprocess.run(
                [str(self.binary), *args],
                capture_output=True,
                text=True,
                timeout=_CLI_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise SyncError(f"{self.binary.name} {' '.join(args)} failed: {exc}") from exc
        if result.returncode != 0:
            raise SyncError(
                f"{self.binary.name} {' '.join(args)} exited "
                f"{result.returncode}: {result.stderr.strip()}"
            )
        return result

    def list_installed(self) -> list[str]:
        """Return installed extension identifiers, one per line of CLI output."""
        output = self._cli("--list-extensions").stdout
        return [line.strip() for line in output.splitlines() if line.strip()]

    def install(self, identifier: str) -> None:
        logger.info("Installing extension: %s", identifier)
        self._cli("--install-extension", identifier)
