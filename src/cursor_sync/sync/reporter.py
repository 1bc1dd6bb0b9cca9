"""Human-readable output for prompts and the ``status`` command.

- ``format_local_diff`` -- unified diff of local edits against the mirror.
- ``format_remote_diff`` -- tidy a git diff for a pull prompt.
- ``truncate_diff`` -- cap a diff for dialogs with limited space.
- ``render_html_diff`` -- standalone HTML page for a unified diff.
- ``summarize_drift`` -- one line per tracked file.
- ``format_status`` -- the ``cursor-sync status`` report.
"""

from __future__ import annotations

import difflib
import html
from typing import TYPE_CHECKING, Sequence

from cursor_sync.file_handler import read_text

from .models import DriftStatus

if TYPE_CHECKING:
    from .models import FileDrift, TrackedFile

_NO_DIFF = "(no textual differences)"

# ------------------------------------------------------------------
# Plain-text diffs
# ------------------------------------------------------------------


def format_local_diff(tracked_files: Sequence[TrackedFile]) -> str:
    """Unified diff from each mirror copy to its local file.

    Files without a local copy are skipped; a missing mirror copy diffs
    against an empty file.
    """
    chunks: list[str] = []
    for tf in tracked_files:
        if not tf.local_path.exists():
            continue
        local = read_text(tf.local_path)
        mirror = read_text(tf.mirror_path) if tf.mirror_path.exists() else ""
        diff = "".join(
            difflib.unified_diff(
                mirror.splitlines(keepends=True),
                local.splitlines(keepends=True),
                fromfile=f"mirror: {tf.mirror_name}",
                tofile=f"local: {tf.local_path}",
            )
        )
        if diff:
            chunks.append(diff.rstrip())
    return "\n".join(chunks)


def format_remote_diff(diff_text: str) -> str:
    """Return *diff_text* without trailing blank lines, or a placeholder."""
    text = diff_text.rstrip()
    return text if text else _NO_DIFF


def truncate_diff(diff_text: str, limit: int = 1500) -> str:
    """Cut *diff_text* to at most *limit* characters on a line boundary."""
    if len(diff_text) <= limit:
        return diff_text
    cut = diff_text[:limit]
    if "\n" in cut:
        cut = cut[: cut.rfind("\n")]
    remaining = diff_text[len(cut):].count("\n")
    return f"{cut}\n... ({remaining} more lines)"


# ------------------------------------------------------------------
# HTML
# ------------------------------------------------------------------

_HTML_PAGE = """\
<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
body {{ font-family: sans-serif; margin: 1.5em; }}
pre {{ font-family: Consolas, Menlo, monospace; font-size: 13px; }}
.add {{ background: #e6ffed; color: #22863a; }}
.del {{ background: #ffeef0; color: #b31d28; }}
.hunk {{ color: #6f42c1; }}
.meta {{ color: #6a737d; font-weight: bold; }}
</style>
</head>
<body>
<h2>{title}</h2>
<pre>
{body}
</pre>
</body>
</html>
"""


def _line_class(line: str) -> str | None:
    if line.startswith(("+++", "---", "diff ", "index ")):
        return "meta"
    if line.startswith("@@"):
        return "hunk"
    if line.startswith("+"):
        return "add"
    if line.startswith("-"):
        return "del"
    return None


def render_html_diff(diff_text: str, title: str) -> str:
    """Render a unified diff as a self-contained, colourised HTML page."""
    rendered: list[str] = []
    for line in format_remote_diff(diff_text).splitlines():
        escaped = html.escape(line)
        css = _line_class(line)
        if css:
            rendered.append(f'<span class="{css}">{escaped}</span>')
        else:
            rendered.append(escaped)
    return _HTML_PAGE.format(
        title=html.escape(title), body="\n".join(rendered)
    )


# ------------------------------------------------------------------
# Summaries
# ------------------------------------------------------------------

_STATUS_LABELS = {
    DriftStatus.IDENTICAL: "in sync",
    DriftStatus.WHITESPACE_ONLY: "whitespace-only changes",
    DriftStatus.SIGNIFICANT: "changed",
    DriftStatus.MISSING: "missing locally",
}


def summarize_drift(drifts: Sequence[FileDrift]) -> str:
    """One ``name: status (path)`` line per inspected file."""
    return "\n".join(
        f"  {d.name}: {_STATUS_LABELS[d.status]} ({d.path})" for d in drifts
    )


def _format_age(seconds: float | None) -> str:
    if seconds is None:
        return "never"
    if seconds < 120:
        return f"{int(seconds)}s ago"
    if seconds < 7200:
        return f"{int(seconds // 60)}m ago"
    return f"{int(seconds // 3600)}h ago"


def format_status(
    *,
    mirror_dir: str,
    head: str | None,
    remote_ref: str | None,
    remote_hash: str | None,
    acknowledged: str | None,
    acknowledged_age: float | None,
    drifts: Sequence[FileDrift],
    editor_running: bool,
) -> str:
    """Build the multi-line ``status`` report."""
    lines = [
        f"Mirror:        {mirror_dir}",
        f"HEAD:          {head or '(none)'}",
        f"Remote tip:    {remote_hash or '(unresolved)'}"
        + (f" [{remote_ref}]" if remote_ref else ""),
        f"Acknowledged:  {acknowledged or '(none)'}"
        f" ({_format_age(acknowledged_age)})",
        f"Editor:        {'running' if editor_running else 'not running'}",
        "",
        "Tracked files:",
        summarize_drift(drifts) if drifts else "  (none)",
    ]
    return "\n".join(lines)
