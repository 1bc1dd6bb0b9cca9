"""Exception hierarchy for cursor-sync.

Three classes cover the failure taxonomy:

- ``SyncError``: base class; anything raised deliberately by this package.
- ``GitError``: a git command exited non-zero.  Transient from the point of
  view of the scheduler loop -- logged and retried on the next iteration.
- ``SetupError``: a precondition of a previous installation is missing
  (no mirror directory, mirror without git history, another instance
  already running).  Fatal: the CLI logs it and exits.
"""

from __future__ import annotations


class SyncError(RuntimeError):
    """Base class for cursor-sync errors."""


class GitError(SyncError):
    """A git subprocess exited with a non-zero status.

    Attributes:
        args_: The git arguments (without the leading ``git``).
        returncode: Process exit status.
        stderr: Captured standard error, stripped.
    """

    def __init__(
        self, args_: tuple[str, ...], returncode: int, stderr: str = ""
    ) -> None:
        self.args_ = args_
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(
            f"git {' '.join(args_)} exited {returncode}{detail}"
        )


class SetupError(SyncError):
    """Installation precondition not met; the process cannot continue."""
