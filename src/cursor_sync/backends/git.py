"""Git backend: mirror repository operations via the git CLI.

``RepositoryBackend`` is the narrow capability set the sync core depends
on; ``GitRepository`` implements it by shelling out to ``git`` in the
mirror directory.  Every failing command raises ``GitError`` unless the
method documents a boolean or ``None`` result instead.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol, Sequence

from cursor_sync.errors import GitError

logger = logging.getLogger(__name__)

# Ignore changes in amount of whitespace and blank-line-only hunks.
WHITESPACE_FLAGS = ("--ignore-all-space", "--ignore-blank-lines")

# Porcelain v1 codes for unmerged paths.
_UNMERGED = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}

# Index stage holding "our" side of a conflicted path.
_OURS_STAGE = 2

_DEFAULT_TIMEOUT = 120


def has_hunks(diff_text: str) -> bool:
    """True if *diff_text* contains at least one ``@@`` hunk.

    ``git diff -w`` may still print a ``diff --git`` header for a file
    whose only changes were whitespace; such output carries no hunks.
    """
    return any(line.startswith("@@") for line in diff_text.splitlines())


class RepositoryBackend(Protocol):
    """Version-control operations consumed by the sync core."""

    def is_repository(self) -> bool: ...  # pragma: no cover

    def head(self) -> str: ...  # pragma: no cover

    def rev_parse(self, ref: str) -> str | None: ...  # pragma: no cover

    def remote_tip(
        self, remote: str, branches: Sequence[str]
    ) -> tuple[str, str] | None: ...  # pragma: no cover

    def fetch(self, remote: str) -> None: ...  # pragma: no cover

    def current_branch(self) -> str: ...  # pragma: no cover

    def local_branches(self) -> list[str]: ...  # pragma: no cover

    def create_branch(
        self, name: str, start: str = "HEAD"
    ) -> None: ...  # pragma: no cover

    def checkout(self, name: str) -> None: ...  # pragma: no cover

    def delete_branch(self, name: str) -> None: ...  # pragma: no cover

    def merge_no_commit(self, rev: str) -> bool: ...  # pragma: no cover

    def merge_in_progress(self) -> bool: ...  # pragma: no cover

    def merge_abort(self) -> None: ...  # pragma: no cover

    def merge_tree(
        self, ours: str, theirs: str
    ) -> str | None: ...  # pragma: no cover

    def diff_ignoring_whitespace(
        self,
        paths: Sequence[str],
        *,
        cached: bool = False,
        base: str | None = None,
        target: str | None = None,
    ) -> str: ...  # pragma: no cover

    def add_all(self) -> None: ...  # pragma: no cover

    def commit(self, message: str) -> str: ...  # pragma: no cover

    def push(self) -> None: ...  # pragma: no cover

    def pull(self) -> None: ...  # pragma: no cover

    def conflicted_files(self) -> list[str]: ...  # pragma: no cover

    def show_stage(
        self, stage: int, path: str
    ) -> bytes | None: ...  # pragma: no cover

    def checkout_ours(
        self, paths: Sequence[str]
    ) -> None: ...  # pragma: no cover

    def status_porcelain(self) -> str: ...  # pragma: no cover


class GitRepository:
    """Wraps git CLI operations on the mirror directory."""

    def __init__(self, workdir: Path, timeout: int = _DEFAULT_TIMEOUT) -> None:
        self.workdir = workdir
        self.timeout = timeout

    def _run(
        self,
        *args: str,
        check: bool = True,
        text: bool = True,
    ) -> subprocess.CompletedProcess:
        """Run a git command in the mirror directory.

        Raises:
            GitError: On a non-zero exit (when *check*), a timeout, or a
                missing git executable.
        """
        logger.debug("git %s", " ".join(args))
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=str(self.workdir),
                capture_output=True,
                text=text,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise GitError(args, -1, f"timed out after {exc.timeout}s") from exc
        except FileNotFoundError as exc:
            raise GitError(args, 127, "git executable not found") from exc
        if check and result.returncode != 0:
            stderr = result.stderr
            if isinstance(stderr, bytes):
                stderr = stderr.decode("utf-8", errors="replace")
            raise GitError(args, result.returncode, stderr or "")
        return result

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    @classmethod
    def clone(cls, url: str, dest: Path) -> GitRepository:
        """Clone *url* into *dest* and return a repository for it."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            result = subprocess.run(
                ["git", "clone", url, str(dest)],
                capture_output=True,
                text=True,
                timeout=_DEFAULT_TIMEOUT,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as exc:
            raise GitError(("clone", url), -1, str(exc)) from exc
        if result.returncode != 0:
            raise GitError(("clone", url), result.returncode, result.stderr)
        logger.info("Cloned %s into %s", url, dest)
        return cls(dest)

    def is_repository(self) -> bool:
        """True when the mirror directory has its own git history."""
        if not (self.workdir / ".git").exists():
            return False
        result = self._run("rev-parse", "--git-dir", check=False)
        return result.returncode == 0

    # ------------------------------------------------------------------
    # Refs
    # ------------------------------------------------------------------

    def head(self) -> str:
        """Return the current HEAD commit id."""
        return self._run("rev-parse", "HEAD").stdout.strip()

    def rev_parse(self, ref: str) -> str | None:
        """Resolve *ref* to a commit id, or ``None`` if it does not exist."""
        result = self._run(
            "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def remote_tip(
        self, remote: str, branches: Sequence[str]
    ) -> tuple[str, str] | None:
        """Return ``(branch, commit)`` for the first existing remote branch."""
        for branch in branches:
            commit = self.rev_parse(f"{remote}/{branch}")
            if commit:
                return branch, commit
        return None

    def current_branch(self) -> str:
        return self._run("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def local_branches(self) -> list[str]:
        output = self._run(
            "for-each-ref", "--format=%(refname:short)", "refs/heads/"
        ).stdout
        return [line.strip() for line in output.splitlines() if line.strip()]

    def fetch(self, remote: str) -> None:
        self._run("fetch", "-q", remote)

    # ------------------------------------------------------------------
    # Disposable branches and speculative merges
    # ------------------------------------------------------------------

    def create_branch(self, name: str, start: str = "HEAD") -> None:
        self._run("checkout", "-q", "-B", name, start)

    def checkout(self, name: str) -> None:
        self._run("checkout", "-q", name)

    def delete_branch(self, name: str) -> None:
        self._run("branch", "-D", name)

    def merge_no_commit(self, rev: str) -> bool:
        """Merge *rev* without committing.  False if the merge stopped."""
        result = self._run(
            "merge", "--no-commit", "--no-ff", rev, check=False
        )
        return result.returncode == 0

    def merge_in_progress(self) -> bool:
        return self.rev_parse("MERGE_HEAD") is not None

    def merge_abort(self) -> None:
        """Abort an in-progress merge; falls back to ``reset --merge``.

        A no-op when no merge is in progress.
        """
        if not self.merge_in_progress():
            return
        result = self._run("merge", "--abort", check=False)
        if result.returncode != 0:
            self._run("reset", "-q", "--merge")

    def merge_tree(self, ours: str, theirs: str) -> str | None:
        """Compute the merge of *theirs* into *ours* without touching refs.

        Returns:
            The merged tree id, or ``None`` when the merge has conflicts.

        Raises:
            GitError: When git is too old for ``merge-tree --write-tree``
                (2.38+) or the command fails for another reason.
        """
        result = self._run(
            "merge-tree", "--write-tree", ours, theirs, check=False
        )
        if result.returncode == 0:
            return result.stdout.splitlines()[0].strip()
        if result.returncode == 1:
            return None
        raise GitError(
            ("merge-tree", "--write-tree", ours, theirs),
            result.returncode,
            result.stderr,
        )

    def diff_ignoring_whitespace(
        self,
        paths: Sequence[str],
        *,
        cached: bool = False,
        base: str | None = None,
        target: str | None = None,
    ) -> str:
        """Unified diff that ignores whitespace-only and blank-line hunks.

        Args:
            paths: Restrict the diff to these mirror-relative paths.
            cached: Diff the index against HEAD (staged changes).
            base: Left side of a revision/tree range.
            target: Right side of a revision/tree range.
        """
        args = ["diff", "--no-color", *WHITESPACE_FLAGS]
        if cached:
            args.append("--cached")
        if base:
            args.append(base)
        if target:
            args.append(target)
        args.append("--")
        args.extend(paths)
        return self._run(*args).stdout

    # ------------------------------------------------------------------
    # Commit / push / pull
    # ------------------------------------------------------------------

    def add_all(self) -> None:
        self._run("add", "-A")

    def commit(self, message: str) -> str:
        """Commit the index and return the new HEAD.

        Raises:
            GitError: Including the "nothing to commit" case.
        """
        self._run("commit", "-q", "-m", message)
        return self.head()

    def push(self) -> None:
        self._run("push", "-q")

    def pull(self) -> None:
        self._run("pull", "-q", "--no-rebase", "--no-edit")

    def status_porcelain(self) -> str:
        return self._run("status", "--porcelain").stdout

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def conflicted_files(self) -> list[str]:
        """Paths git reports as unmerged, whatever the kind of conflict."""
        files: list[str] = []
        for line in self.status_porcelain().splitlines():
            if len(line) > 3 and line[:2] in _UNMERGED:
                files.append(line[3:].strip().strip('"'))
        return files

    def show_stage(self, stage: int, path: str) -> bytes | None:
        """Return the blob at merge *stage* (1 base, 2 ours, 3 theirs)."""
        result = self._run("show", f":{stage}:{path}", check=False, text=False)
        if result.returncode != 0:
            return None
        return result.stdout

    def checkout_ours(self, paths: Sequence[str]) -> None:
        """Take our side of each conflicted path.

        Paths we deleted (no stage 2 entry) are removed from the index and
        the working tree, so the local deletion wins too.
        """
        ours = self._paths_at_stage(_OURS_STAGE)
        keep = [p for p in paths if p in ours]
        gone = [p for p in paths if p not in ours]
        if keep:
            self._run("checkout", "--ours", "--", *keep)
        if gone:
            self._run("rm", "-q", "-f", "--ignore-unmatch", "--", *gone)

    def _paths_at_stage(self, stage: int) -> set[str]:
        output = self._run("ls-files", "--unmerged", "-z").stdout
        paths: set[str] = set()
        for entry in output.split("\0"):
            if "\t" not in entry:
                continue
            meta, path = entry.split("\t", 1)
            if meta.split()[-1] == str(stage):
                paths.add(path)
        return paths
