"""Notification and confirmation backends.

Every confirmation blocks until the operator answers; there is no
timeout.  A backend that cannot show its dialog treats that as a
decline, so an unattended machine never pushes or pulls on its own.
"""

from __future__ import annotations

import logging
import subprocess
import sys
import tempfile
import webbrowser
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, TextIO

from cursor_sync.sync.reporter import render_html_diff, truncate_diff

if TYPE_CHECKING:
    from cursor_sync.config import SyncConfig

logger = logging.getLogger(__name__)

TITLE = "Cursor Settings Sync"

# macOS dialogs become unusable well before this.
_DIALOG_DIFF_LIMIT = 1500


class ConfirmationBackend(Protocol):
    """Operator-facing notification sink."""

    def notify(self, title: str, message: str) -> None: ...  # pragma: no cover

    def confirm(
        self,
        title: str,
        message: str,
        action_label: str,
        diff: str | None = None,
    ) -> bool: ...  # pragma: no cover


# ---------------------------------------------------------------------------
# macOS
# ---------------------------------------------------------------------------


def applescript_quote(text: str) -> str:
    """Return *text* as an AppleScript string literal."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class MacNotifier:
    """``osascript`` notifications and dialogs; diffs inline as text."""

    def _osascript(self, *lines: str) -> subprocess.CompletedProcess:
        args = ["osascript"]
        for line in lines:
            args.extend(["-e", line])
        return subprocess.run(args, capture_output=True, text=True)

    def notify(self, title: str, message: str) -> None:
        result = self._osascript(
            f"display notification {applescript_quote(message)} "
            f"with title {applescript_quote(title)}"
        )
        if result.returncode != 0:
            logger.warning("Notification failed: %s", result.stderr.strip())

    def confirm(
        self,
        title: str,
        message: str,
        action_label: str,
        diff: str | None = None,
    ) -> bool:
        text = message
        if diff:
            text += "\n\n" + truncate_diff(diff, _DIALOG_DIFF_LIMIT)
        result = self._osascript(
            f"display dialog {applescript_quote(text)} "
            f"with title {applescript_quote(title)} "
            f'buttons {{"Cancel", {applescript_quote(action_label)}}} '
            f"default button {applescript_quote(action_label)}",
            "set response to button returned of result",
        )
        # "Cancel" makes osascript exit with error -128.
        return result.returncode == 0 and result.stdout.strip() == action_label


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------


def powershell_quote(text: str) -> str:
    """Return *text* as a single-quoted PowerShell string literal."""
    return "'" + text.replace("'", "''") + "'"


class WindowsNotifier:
    """PowerShell message boxes; diffs open as an HTML page in the browser."""

    def __init__(self, preview_dir: Path | None = None) -> None:
        self.preview_dir = preview_dir

    def _powershell(self, script: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["powershell", "-NoProfile", "-Command", script],
            capture_output=True,
            text=True,
        )

    def notify(self, title: str, message: str) -> None:
        toast = self._powershell(
            "New-BurntToastNotification -Text "
            f"{powershell_quote(title)}, {powershell_quote(message)}"
        )
        if toast.returncode == 0:
            return
        box = self._powershell(
            "[System.Reflection.Assembly]::LoadWithPartialName("
            "'System.Windows.Forms') | Out-Null; "
            "[System.Windows.Forms.MessageBox]::Show("
            f"{powershell_quote(message)}, {powershell_quote(title)}) | Out-Null"
        )
        if box.returncode != 0:
            logger.warning("Notification failed: %s", box.stderr.strip())

    def open_preview(self, diff: str, title: str) -> Path:
        """Write *diff* as an HTML page and open it in the default browser."""
        fd, name = tempfile.mkstemp(
            prefix="cursor-sync-diff-",
            suffix=".html",
            dir=str(self.preview_dir) if self.preview_dir else None,
        )
        path = Path(name)
        with open(fd, "w", encoding="utf-8") as fh:
            fh.write(render_html_diff(diff, title))
        webbrowser.open(path.as_uri())
        return path

    def confirm(
        self,
        title: str,
        message: str,
        action_label: str,
        diff: str | None = None,
    ) -> bool:
        if diff:
            try:
                self.open_preview(diff, title)
            except OSError as exc:
                logger.warning("Could not open diff preview: %s", exc)
        result = self._powershell(
            "[System.Reflection.Assembly]::LoadWithPartialName("
            "'System.Windows.Forms') | Out-Null; "
            "$result = [System.Windows.Forms.MessageBox]::Show("
            f"{powershell_quote(message)}, {powershell_quote(title)}, "
            "'YesNo', 'Question'); "
            "if ($result -eq 'Yes') { exit 0 } else { exit 1 }"
        )
        return result.returncode == 0


# ---------------------------------------------------------------------------
# Console
# ---------------------------------------------------------------------------


class ConsoleNotifier:
    """Terminal prompts; used on Linux and for manual runs."""

    def __init__(
        self, stdin: TextIO | None = None, stdout: TextIO | None = None
    ) -> None:
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout

    def notify(self, title: str, message: str) -> None:
        print(f"[{title}] {message}", file=self.stdout, flush=True)

    def confirm(
        self,
        title: str,
        message: str,
        action_label: str,
        diff: str | None = None,
    ) -> bool:
        out = self.stdout
        print(f"[{title}] {message}", file=out)
        if diff:
            print(diff.rstrip(), file=out)
        print(f"{action_label}? [y/N] ", end="", file=out, flush=True)
        answer = self.stdin.readline()
        if not answer:
            # EOF: no operator attached.
            return False
        return answer.strip().lower() in {"y", "yes", action_label.lower()}


def make_notifier(config: SyncConfig) -> ConfirmationBackend:
    """Return the backend named by ``config.notifier``."""
    if config.notifier == "macos":
        return MacNotifier()
    if config.notifier == "windows":
        return WindowsNotifier()
    return ConsoleNotifier()
