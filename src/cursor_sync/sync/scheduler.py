"""The polling loop.

One iteration: local check -> push prompt -> remote check -> pull prompt.
Between iterations the loop sleeps for ``config.interval`` seconds.  Every
step runs on the calling thread; the only blocking points are the
operator prompts and the sleep.
"""

from __future__ import annotations

import logging
import signal
import threading
from typing import TYPE_CHECKING, Callable

from cursor_sync.backends.notify import TITLE
from cursor_sync.errors import SetupError

from .reporter import format_local_diff, format_remote_diff

if TYPE_CHECKING:
    from cursor_sync.backends.notify import ConfirmationBackend
    from cursor_sync.config import SyncConfig

    from .actions import Reconciler
    from .local_drift import LocalDriftDetector
    from .remote_drift import RemoteDriftDetector

logger = logging.getLogger(__name__)


class Scheduler:
    """Drive detectors and actions on a fixed interval.

    Args:
        config: Runtime configuration.
        local: Local drift detector.
        remote: Remote drift detector.
        reconciler: Push/pull actions.
        notifier: Operator prompts.
        skip_initial_checks: Suppress the remote check on the first
            iteration only.
        sleep: Called with the interval between iterations.  Defaults to
            a wait that ``stop()`` interrupts.
    """

    def __init__(
        self,
        config: SyncConfig,
        local: LocalDriftDetector,
        remote: RemoteDriftDetector,
        reconciler: Reconciler,
        notifier: ConfirmationBackend,
        *,
        skip_initial_checks: bool = False,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self.config = config
        self.local = local
        self.remote = remote
        self.reconciler = reconciler
        self.notifier = notifier
        self.iterations = 0
        self._skip_remote = skip_initial_checks
        self._stop_event = threading.Event()
        self._sleep = sleep or self._stop_event.wait

    # ------------------------------------------------------------------
    # One iteration
    # ------------------------------------------------------------------

    def run_once(self) -> None:
        """Run a single iteration.

        The one-shot skip flag is cleared afterwards even if the
        iteration raised.
        """
        skip = self._skip_remote
        try:
            self._check_local()
            self._check_remote(skip)
        finally:
            self._skip_remote = False
            self.iterations += 1

    def _check_local(self) -> None:
        if not self.local.check():
            return
        self.notifier.notify(TITLE, "Local changes detected. Sync to GitHub?")
        diff = format_local_diff(self.config.tracked_files)
        if self.notifier.confirm(
            TITLE,
            "Local Cursor settings have changed. Push to GitHub?",
            "Push",
            diff=diff or None,
        ):
            self.reconciler.push()
        else:
            logger.info("User declined to push changes")

    def _check_remote(self, skip: bool) -> None:
        result = self.remote.evaluate(skip=skip)
        if not result.drift:
            return
        self.notifier.notify(
            TITLE, "Remote changes detected. Update local settings?"
        )
        if self.notifier.confirm(
            TITLE,
            "Remote Cursor settings have changed. Pull from GitHub?",
            "Pull",
            diff=format_remote_diff(result.diff),
        ):
            self.reconciler.pull()
        else:
            logger.info("User declined to pull changes")

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """Ask the loop to finish after the current step."""
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def _on_signal(self, signum: int, _frame: object) -> None:
        logger.info("Received signal %d, stopping", signum)
        self.stop()

    def run_forever(self, max_iterations: int | None = None) -> int:
        """Loop until stopped, interrupted or *max_iterations* reached.

        Returns:
            The number of iterations run.

        Raises:
            SetupError: Propagated immediately; everything else raised by
                an iteration is logged and the loop continues.
        """
        previous = None
        if threading.current_thread() is threading.main_thread():
            previous = signal.signal(signal.SIGTERM, self._on_signal)

        logger.info(
            "Starting Cursor settings sync service on %s", self.config.os_label
        )
        logger.info(
            "Monitoring: %s",
            " ".join(str(tf.local_path) for tf in self.config.tracked_files),
        )
        logger.info("Mirror directory: %s", self.config.mirror_dir)

        try:
            while not self.stopping:
                try:
                    self.run_once()
                except SetupError:
                    raise
                except Exception:
                    logger.exception("Sync iteration failed")
                if max_iterations is not None and self.iterations >= max_iterations:
                    break
                if self.stopping:
                    break
                self._sleep(self.config.interval)
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping")
        finally:
            if previous is not None:
                signal.signal(signal.SIGTERM, previous)
        logger.info("Sync service stopped after %d iteration(s)", self.iterations)
        return self.iterations
