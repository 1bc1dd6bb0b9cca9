"""Local drift detection: editor files against their mirror copies."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from cursor_sync.file_handler import read_text

from .models import DriftStatus, FileDrift, TrackedFile
from .normalizer import contents_equivalent, squash_lines

if TYPE_CHECKING:
    from cursor_sync.config import SyncConfig

logger = logging.getLogger(__name__)


class LocalDriftDetector:
    """Decide whether any tracked file has meaningful local edits.

    Args:
        config: Runtime configuration (supplies the tracked files).
        reader: Returns decoded file content; injectable for tests.
    """

    def __init__(
        self,
        config: SyncConfig,
        reader: Callable[[Path], str] = read_text,
    ) -> None:
        self.config = config
        self._read = reader

    def compare(self, tf: TrackedFile) -> FileDrift:
        """Classify a single tracked file.  Logs nothing."""
        if not tf.local_path.exists():
            return FileDrift(
                name=tf.name, path=tf.local_path, status=DriftStatus.MISSING
            )
        if not tf.mirror_path.exists():
            return FileDrift(
                name=tf.name, path=tf.local_path, status=DriftStatus.SIGNIFICANT
            )

        local = self._read(tf.local_path)
        mirror = self._read(tf.mirror_path)

        if squash_lines(local) == squash_lines(mirror):
            status = DriftStatus.IDENTICAL
        elif contents_equivalent(local, mirror, tf.kind):
            status = DriftStatus.WHITESPACE_ONLY
        else:
            status = DriftStatus.SIGNIFICANT
        return FileDrift(name=tf.name, path=tf.local_path, status=status)

    def inspect(self) -> list[FileDrift]:
        """Classify every tracked file, logging what was found."""
        drifts: list[FileDrift] = []
        for tf in self.config.tracked_files:
            drift = self.compare(tf)
            if drift.status == DriftStatus.WHITESPACE_ONLY:
                logger.info(
                    "Whitespace-only changes in %s, ignoring", tf.local_path
                )
            elif drift.status == DriftStatus.SIGNIFICANT:
                logger.info("Changes detected in %s", tf.local_path)
            elif drift.status == DriftStatus.MISSING:
                logger.debug("Local file %s does not exist", tf.local_path)
            drifts.append(drift)
        return drifts

    def check(self) -> bool:
        """True if at least one tracked file changed significantly."""
        return any(d.significant for d in self.inspect())
