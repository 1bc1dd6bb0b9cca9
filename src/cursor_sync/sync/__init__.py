"""Settings sync core: drift detection, reconciliation and the loop.

Importing this package pulls in only the data models; import the
detector, action and scheduler modules directly.
"""

from .models import (
    ActionResult,
    ConflictResolution,
    DriftStatus,
    FileDrift,
    FileKind,
    RemoteCheck,
    TrackedFile,
)

__all__ = [
    "ActionResult",
    "ConflictResolution",
    "DriftStatus",
    "FileDrift",
    "FileKind",
    "RemoteCheck",
    "TrackedFile",
]
