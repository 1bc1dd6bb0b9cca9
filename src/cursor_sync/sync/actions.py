"""Reconciliation actions: push, pull and extension sync.

Both directions share one rule for the acknowledged hash: it advances to
the new HEAD only after the whole action succeeded, and is left alone on
any failure so the next iteration sees the same state again.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from cursor_sync.errors import GitError, SyncError
from cursor_sync.file_handler import copy_file, read_text, same_file, write_file

from .models import ActionResult, ConflictResolution

if TYPE_CHECKING:
    from cursor_sync.backends.editor import ExtensionBackend
    from cursor_sync.backends.git import RepositoryBackend
    from cursor_sync.config import SyncConfig

    from .conflict import ConflictResolver
    from .state import HashStore

logger = logging.getLogger(__name__)

COMMIT_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def push_message(os_label: str, when: datetime) -> str:
    return f"Auto-sync: Updated settings on {os_label} at {when.strftime(COMMIT_TIME_FORMAT)}"


def parse_manifest(content: str) -> list[str]:
    """Extension identifiers from a manifest, blank lines and ``#`` dropped."""
    ids: list[str] = []
    for line in content.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            ids.append(line)
    return ids


class Reconciler:
    """Carries out the operator's push/pull decisions.

    Args:
        config: Runtime configuration.
        repo: The mirror repository.
        hash_store: Acknowledged hash persistence.
        extensions: Editor process and extension CLI.
        resolver: Run after every pull attempt.
        clock: Timestamp source for commit messages.
    """

    def __init__(
        self,
        config: SyncConfig,
        repo: RepositoryBackend,
        hash_store: HashStore,
        extensions: ExtensionBackend,
        resolver: ConflictResolver,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self.repo = repo
        self.hash_store = hash_store
        self.extensions = extensions
        self.resolver = resolver
        self._clock = clock

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def push(self) -> ActionResult:
        """Copy local files into the mirror, commit and push."""
        logger.info("Pushing changes to remote...")
        try:
            for tf in self.config.tracked_files:
                if tf.local_path.exists():
                    copy_file(tf.local_path, tf.mirror_path)
            self.export_extensions()
            self.repo.add_all()
            self.repo.commit(push_message(self.config.os_label, self._clock()))
            self.repo.push()
            new_hash = self.repo.head()
        except (SyncError, OSError) as exc:
            logger.error("Failed to push changes: %s", exc)
            return ActionResult(action="push", success=False, error=str(exc))

        self.hash_store.write(new_hash)
        logger.info("Successfully pushed changes")
        return ActionResult(action="push", success=True, new_hash=new_hash)

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def pull(self) -> ActionResult:
        """Pull, resolve conflicts, then refresh local files and extensions."""
        logger.info("Pulling changes from remote...")
        pull_error: GitError | None = None
        try:
            self.repo.pull()
        except GitError as exc:
            pull_error = exc

        conflicts: ConflictResolution | None
        try:
            conflicts = self.resolver.resolve()
        except GitError as exc:
            logger.error("Conflict resolution failed: %s", exc)
            conflicts = None

        if pull_error is not None:
            logger.error("Failed to pull changes: %s", pull_error)
            return ActionResult(
                action="pull",
                success=False,
                error=str(pull_error),
                conflicts=conflicts,
            )

        try:
            new_hash = self.repo.head()
        except GitError as exc:
            logger.error("Failed to pull changes: %s", exc)
            return ActionResult(
                action="pull", success=False, error=str(exc), conflicts=conflicts
            )

        self.hash_store.write(new_hash)
        self._copy_back()
        self.sync_extensions()
        logger.info("Successfully pulled changes")
        return ActionResult(
            action="pull", success=True, new_hash=new_hash, conflicts=conflicts
        )

    def _copy_back(self) -> None:
        """Mirror -> local for tracked files that are not symlinked."""
        for tf in self.config.tracked_files:
            if not tf.mirror_path.exists():
                continue
            if tf.local_path.is_symlink() or same_file(tf.local_path, tf.mirror_path):
                continue
            try:
                copy_file(tf.mirror_path, tf.local_path)
                logger.info("Updated %s from mirror", tf.local_path)
            except OSError as exc:
                logger.error("Could not update %s: %s", tf.local_path, exc)

    # ------------------------------------------------------------------
    # Extensions
    # ------------------------------------------------------------------

    def export_extensions(self) -> bool:
        """Write the installed extension list to the manifest.

        Returns:
            True if the manifest was written.
        """
        if self.extensions.is_running():
            logger.info("Cursor is running. Skipping extension export.")
            return False
        if not self.extensions.available():
            logger.debug("Editor binary not found, not exporting extensions")
            return False
        try:
            ids = self.extensions.list_installed()
        except SyncError as exc:
            logger.warning("Could not list extensions: %s", exc)
            return False
        logger.info("Exporting extensions list...")
        write_file(
            self.config.extensions_file, "".join(f"{i}\n" for i in ids)
        )
        return True

    def sync_extensions(self) -> tuple[int, int]:
        """Install manifest extensions that are missing locally.

        Returns:
            ``(installed, failed)`` counts.
        """
        if self.extensions.is_running():
            logger.info("Cursor is running. Skipping extension sync.")
            return (0, 0)
        manifest = self.config.extensions_file
        if not manifest.exists():
            return (0, 0)
        if not self.extensions.available():
            logger.warning("Editor binary not found, skipping extension sync")
            return (0, 0)

        logger.info("Syncing extensions...")
        try:
            present = {e.lower() for e in self.extensions.list_installed()}
        except SyncError as exc:
            logger.warning("Could not list extensions: %s", exc)
            return (0, 0)

        installed = failed = 0
        for ext in parse_manifest(read_text(manifest)):
            if ext.lower() in present:
                continue
            try:
                self.extensions.install(ext)
            except SyncError as exc:
                logger.warning("Failed to install extension %s: %s", ext, exc)
                failed += 1
                continue
            present.add(ext.lower())
            installed += 1
        if installed or failed:
            logger.info(
                "Extension sync: %d installed, %d failed", installed, failed
            )
        return (installed, failed)
