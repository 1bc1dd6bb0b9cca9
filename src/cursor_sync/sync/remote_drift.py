"""Remote drift detection.

Compares three commit ids on every call:

* **C** -- the mirror's HEAD.
* **R** -- the remote branch tip after a fetch.
* **L** -- the acknowledged hash from the ``HashStore``.

Only when R differs from both C and L is the remote change classified, by
merging R into the current state speculatively and diffing the tracked
files with whitespace ignored.  A whitespace-only result advances L to R
so the same tip is never classified twice.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cursor_sync.backends.git import has_hunks
from cursor_sync.errors import GitError, SetupError

from .models import RemoteCheck

if TYPE_CHECKING:
    from cursor_sync.backends.git import RepositoryBackend
    from cursor_sync.config import SyncConfig

    from .state import HashStore

logger = logging.getLogger(__name__)

TMP_BRANCH_PREFIX = "cursor-sync-tmp-"


def short(commit: str | None) -> str:
    return commit[:7] if commit else "-"


class RemoteDriftDetector:
    """Decide whether the remote carries changes worth a pull prompt.

    Args:
        config: Runtime configuration.
        repo: The mirror repository.
        hash_store: Where the acknowledged hash lives.
    """

    def __init__(
        self,
        config: SyncConfig,
        repo: RepositoryBackend,
        hash_store: HashStore,
    ) -> None:
        self.config = config
        self.repo = repo
        self.hash_store = hash_store

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check(self, skip: bool = False) -> bool:
        """True when a significant remote change should be surfaced."""
        return self.evaluate(skip=skip).drift

    def evaluate(self, skip: bool = False) -> RemoteCheck:
        """Run one remote check and explain the outcome.

        Args:
            skip: Return immediately without touching the network.
        """
        if skip:
            logger.info("Skipping remote check for this iteration")
            return RemoteCheck(drift=False, reason="skipped")

        age = self.hash_store.age()
        if age is not None and age < self.config.debounce:
            logger.debug(
                "Acknowledged %.0fs ago (< %ss), skipping remote check",
                age,
                self.config.debounce,
            )
            return RemoteCheck(drift=False, reason="debounced")

        try:
            self.repo.fetch(self.config.remote)
        except GitError as exc:
            logger.warning("Fetch failed, will retry next iteration: %s", exc)
            return RemoteCheck(drift=False, reason="fetch_failed")

        try:
            return self._compare()
        except GitError as exc:
            logger.error("Remote check failed: %s", exc)
            return RemoteCheck(drift=False, reason="error")

    def classify(self, head: str, remote: str) -> tuple[bool, str]:
        """Classify the change from *head* to the merge of *remote*.

        Returns:
            ``(significant, diff)`` where *diff* is the whitespace-filtered
            diff of the speculative merge result against *head*.
        """
        mode = self.config.speculative_merge
        if mode in ("auto", "tree"):
            try:
                tree = self.repo.merge_tree(head, remote)
            except GitError as exc:
                if mode == "tree":
                    raise
                logger.debug("In-memory merge unavailable (%s)", exc)
            else:
                if tree is not None:
                    diff = self.repo.diff_ignoring_whitespace(
                        self.config.tracked_mirror_names,
                        base=head,
                        target=tree,
                    )
                    return has_hunks(diff), diff
                logger.debug(
                    "In-memory merge of %s reports conflicts", short(remote)
                )
        return self._classify_on_branch(remote)

    def recover(self) -> bool:
        """Undo what an interrupted trial merge left in the mirror.

        Aborts a merge left on a disposable branch, returns to the first
        configured local branch and deletes every disposable branch.

        Returns:
            True when anything had to be cleaned up.

        Raises:
            SetupError: When stuck on a disposable branch with no local
                branch to return to.
        """
        branches = self.repo.local_branches()
        stray = [b for b in branches if b.startswith(TMP_BRANCH_PREFIX)]
        if not stray:
            return False

        if self.repo.current_branch().startswith(TMP_BRANCH_PREFIX):
            home = next((b for b in self.config.branches if b in branches), None)
            if home is None:
                home = next(
                    (b for b in branches if not b.startswith(TMP_BRANCH_PREFIX)),
                    None,
                )
            if home is None:
                raise SetupError(
                    "Mirror is on a leftover trial-merge branch and has no "
                    "local branch to return to"
                )
            self.repo.merge_abort()
            self.repo.checkout(home)
            logger.warning("Returned mirror from trial-merge branch to %s", home)

        for name in stray:
            self.repo.delete_branch(name)
        logger.warning(
            "Removed leftover trial-merge branch(es): %s", ", ".join(stray)
        )
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _compare(self) -> RemoteCheck:
        head = self.repo.head()
        tip = self.repo.remote_tip(self.config.remote, self.config.branches)
        if tip is None:
            logger.warning(
                "No remote branch found (tried %s)",
                ", ".join(
                    f"{self.config.remote}/{b}" for b in self.config.branches
                ),
            )
            return RemoteCheck(drift=False, reason="no_remote", local_hash=head)

        _, remote = tip
        if remote == head:
            return RemoteCheck(
                drift=False,
                reason="up_to_date",
                local_hash=head,
                remote_hash=remote,
            )
        if self.hash_store.read() == remote:
            logger.debug("Remote tip %s already acknowledged", short(remote))
            return RemoteCheck(
                drift=False,
                reason="acknowledged",
                local_hash=head,
                remote_hash=remote,
            )

        significant, _ = self.classify(head, remote)
        if not significant:
            logger.info(
                "Whitespace-only remote changes in %s, ignoring", short(remote)
            )
            self.hash_store.write(remote)
            return RemoteCheck(
                drift=False,
                reason="whitespace_only",
                local_hash=head,
                remote_hash=remote,
            )

        logger.info(
            "Remote changes detected (%s -> %s)", short(head), short(remote)
        )
        preview = self.repo.diff_ignoring_whitespace(
            self.config.tracked_mirror_names, base=head, target=remote
        )
        return RemoteCheck(
            drift=True,
            reason="significant",
            local_hash=head,
            remote_hash=remote,
            diff=preview,
        )

    def _classify_on_branch(self, remote: str) -> tuple[bool, str]:
        """Merge *remote* on a disposable branch and diff the staged result.

        The branch is always deleted and the original branch restored,
        whether or not the merge succeeded.
        """
        self.recover()
        original = self.repo.current_branch()
        if original == "HEAD":
            original = self.repo.head()
        tmp = f"{TMP_BRANCH_PREFIX}{short(remote)}"

        self.repo.create_branch(tmp)
        try:
            clean = self.repo.merge_no_commit(remote)
            diff = ""
            if clean:
                diff = self.repo.diff_ignoring_whitespace(
                    self.config.tracked_mirror_names, cached=True
                )
            else:
                logger.info(
                    "Trial merge of %s stopped; treating as significant",
                    short(remote),
                )
            return (not clean) or has_hunks(diff), diff
        finally:
            try:
                self.repo.merge_abort()
                self.repo.checkout(original)
            finally:
                self.repo.delete_branch(tmp)
