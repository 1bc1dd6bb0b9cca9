"""Post-pull conflict resolution: local wins, remote archived.

After a pull that stopped on conflicts, every unmerged path is
checked out from our side and committed.  Before that, the remote side
of each path (index stage 3) and any merge-tool leftovers in the mirror
are copied into the conflicts directory so nothing is lost.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Sequence

from cursor_sync.backends.notify import TITLE
from cursor_sync.errors import GitError

from .models import ConflictResolution

if TYPE_CHECKING:
    from cursor_sync.backends.git import RepositoryBackend
    from cursor_sync.backends.notify import ConfirmationBackend
    from cursor_sync.config import SyncConfig

logger = logging.getLogger(__name__)

RESOLVED_MESSAGE = "Auto-resolved conflicts by keeping local version"

# Files merge tools leave next to a conflicted path.
ARTIFACT_PATTERNS = ("*_BACKUP_*", "*_BASE_*", "*_LOCAL_*", "*_REMOTE_*", "*.orig")

_STAMP_FORMAT = "%Y%m%d-%H%M%S"

# Index stage holding "their" side of a conflicted path.
THEIRS_STAGE = 3


class ConflictResolver:
    """Resolve a conflicted mirror in favour of the local copy.

    Args:
        config: Runtime configuration (mirror and archive locations).
        repo: The mirror repository.
        notifier: Told once when conflicts are found.
        clock: Timestamp source for archive names.
    """

    def __init__(
        self,
        config: SyncConfig,
        repo: RepositoryBackend,
        notifier: ConfirmationBackend,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self.repo = repo
        self.notifier = notifier
        self._clock = clock

    def resolve(self) -> ConflictResolution:
        """Resolve any conflicts; a no-op when the tree has none."""
        files = self.repo.conflicted_files()
        if not files:
            return ConflictResolution()

        logger.warning("Merge conflicts detected in %s", ", ".join(files))
        self.notifier.notify(
            TITLE, "Merge conflicts detected. Keeping local version."
        )

        archived = self.archive(files)
        self.repo.checkout_ours(files)
        self.repo.add_all()
        try:
            self.repo.commit(RESOLVED_MESSAGE)
        except GitError as exc:
            logger.error("Could not commit conflict resolution: %s", exc)
            return ConflictResolution(
                had_conflicts=True, files=files, archived=archived
            )

        logger.info(
            "Conflicts auto-resolved by keeping local version. Backups in %s",
            self.config.conflicts_dir,
        )
        return ConflictResolution(
            had_conflicts=True, files=files, archived=archived, committed=True
        )

    def archive(self, files: Sequence[str]) -> list[Path]:
        """Copy remote stages and merge artifacts into the archive.

        Best effort: an artifact that cannot be copied is logged and
        skipped.
        """
        target = self.config.conflicts_dir
        target.mkdir(parents=True, exist_ok=True)
        stamp = self._clock().strftime(_STAMP_FORMAT)
        archived: list[Path] = []

        for path in files:
            blob = self.repo.show_stage(THEIRS_STAGE, path)
            if blob is None:
                continue
            dest = target / f"{Path(path).name}.remote.{stamp}"
            dest.write_bytes(blob)
            archived.append(dest)

        for pattern in ARTIFACT_PATTERNS:
            for artifact in sorted(self.config.mirror_dir.glob(pattern)):
                if not artifact.is_file():
                    continue
                dest = target / artifact.name
                try:
                    shutil.copy2(artifact, dest)
                except OSError as exc:
                    logger.warning("Could not archive %s: %s", artifact, exc)
                    continue
                archived.append(dest)

        logger.debug("Archived %d conflict file(s)", len(archived))
        return archived
