"""Pydantic models for the settings sync core.

Defines the data contracts shared across the sync modules:

- ``FileKind``: how a tracked file is normalised (JSON or opaque text).
- ``TrackedFile``: one fixed (local, mirror) file pair.
- ``DriftStatus``: classification of a single file comparison.
- ``FileDrift``: outcome of comparing one tracked file.
- ``RemoteCheck``: outcome of one remote drift check.
- ``ConflictResolution``: what the conflict resolver did.
- ``ActionResult``: outcome of a push or pull.

All models are frozen (immutable).
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel


class FileKind(str, Enum):
    """How a tracked file's content is canonicalised for comparison."""

    JSON = "json"
    OPAQUE = "opaque"


class TrackedFile(BaseModel):
    """A (local, mirror) file pair under synchronisation.

    Attributes:
        name: Short label used in logs (``settings``, ``keybindings``).
        local_path: The editor-owned file.
        mirror_path: The copy inside the version-controlled mirror.
        kind: Normalisation strategy.
    """

    name: str
    local_path: Path
    mirror_path: Path
    kind: FileKind = FileKind.JSON

    model_config = {"frozen": True}

    @property
    def mirror_name(self) -> str:
        """Path of the mirror copy relative to the mirror root (its file name)."""
        return self.mirror_path.name


class DriftStatus(str, Enum):
    """Classification of a local-vs-mirror or remote-vs-head comparison."""

    IDENTICAL = "identical"
    WHITESPACE_ONLY = "whitespace_only"
    SIGNIFICANT = "significant"
    MISSING = "missing"


class FileDrift(BaseModel):
    """Result of comparing one tracked file.

    Attributes:
        name: The tracked file's label.
        path: The local path that was inspected.
        status: Drift classification.
    """

    name: str
    path: Path
    status: DriftStatus

    model_config = {"frozen": True}

    @property
    def significant(self) -> bool:
        return self.status == DriftStatus.SIGNIFICANT


class RemoteCheck(BaseModel):
    """Result of a remote drift check.

    Attributes:
        drift: True when a significant remote change should be surfaced.
        reason: Short machine-friendly reason (``skipped``, ``debounced``,
            ``fetch_failed``, ``no_remote``, ``up_to_date``,
            ``acknowledged``, ``whitespace_only``, ``significant``,
            ``error``).
        local_hash: HEAD at check time, when known.
        remote_hash: Remote tip at check time, when known.
        diff: Whitespace-filtered diff of the remote change (significant
            results only).
    """

    drift: bool
    reason: str
    local_hash: str | None = None
    remote_hash: str | None = None
    diff: str = ""

    model_config = {"frozen": True}


class ConflictResolution(BaseModel):
    """What the conflict resolver did after a pull.

    Attributes:
        had_conflicts: Whether any file was in a both-modified state.
        files: Conflicting paths, relative to the mirror root.
        archived: Archive copies written under the conflicts directory.
        committed: Whether the resolution commit succeeded.
    """

    had_conflicts: bool = False
    files: list[str] = []
    archived: list[Path] = []
    committed: bool = False

    model_config = {"frozen": True}


class ActionResult(BaseModel):
    """Outcome of a push or pull.

    Attributes:
        action: ``"push"`` or ``"pull"``.
        success: Whether the action completed.
        new_hash: HEAD after a successful action.
        error: Error message if the action failed.
        conflicts: Conflict resolution details (pull only).
    """

    action: str
    success: bool
    new_hash: str | None = None
    error: str | None = None
    conflicts: ConflictResolution | None = None

    model_config = {"frozen": True}
