"""Tests for cursor_sync.sync.reporter."""

from __future__ import annotations

from pathlib import Path

from conftest import SIGNIFICANT_DIFF
from cursor_sync.sync.models import DriftStatus, FileDrift
from cursor_sync.sync.reporter import (
    format_local_diff,
    format_remote_diff,
    format_status,
    render_html_diff,
    summarize_drift,
    truncate_diff,
)


class TestFormatLocalDiff:
    def test_diff_from_mirror_to_local(self, sync_config):
        tf = sync_config.tracked_files[0]
        tf.mirror_path.write_text('{\n  "a": 1\n}\n')
        tf.local_path.write_text('{\n  "a": 2\n}\n')

        diff = format_local_diff(sync_config.tracked_files)

        assert '-  "a": 1' in diff
        assert '+  "a": 2' in diff
        assert "mirror: settings.json" in diff

    def test_identical_files_give_empty_diff(self, sync_config):
        for tf in sync_config.tracked_files:
            tf.mirror_path.write_text("[]\n")
            tf.local_path.write_text("[]\n")
        assert format_local_diff(sync_config.tracked_files) == ""

    def test_missing_mirror_diffs_against_empty(self, sync_config):
        tf = sync_config.tracked_files[1]
        tf.local_path.write_text("[]\n")
        assert "+[]" in format_local_diff(sync_config.tracked_files)

    def test_missing_local_skipped(self, sync_config):
        sync_config.tracked_files[0].mirror_path.write_text("{}\n")
        assert format_local_diff(sync_config.tracked_files) == ""


class TestRemoteDiff:
    def test_trailing_blank_lines_removed(self):
        assert format_remote_diff(SIGNIFICANT_DIFF + "\n\n") == SIGNIFICANT_DIFF.rstrip()

    def test_placeholder_for_empty(self):
        assert format_remote_diff("  \n") == "(no textual differences)"


class TestTruncateDiff:
    def test_short_text_unchanged(self):
        assert truncate_diff("abc", limit=10) == "abc"

    def test_cut_on_line_boundary(self):
        text = "\n".join(f"line {i}" for i in range(100))
        out = truncate_diff(text, limit=50)
        body, marker = out.rsplit("\n", 1)
        assert len(body) <= 50
        assert body.endswith(tuple(f"line {i}" for i in range(10)))
        assert marker.startswith("... (") and marker.endswith("more lines)")


class TestRenderHtmlDiff:
    def test_escapes_and_classes(self):
        page = render_html_diff(SIGNIFICANT_DIFF, "Remote <changes>")
        assert "<title>Remote &lt;changes&gt;</title>" in page
        assert '<span class="hunk">@@ -1,3 +1,4 @@</span>' in page
        assert '<span class="add">+  &quot;editor.fontSize&quot;: 14,</span>' in page
        assert '<span class="meta">--- a/settings.json</span>' in page

    def test_empty_diff_placeholder(self):
        assert "(no textual differences)" in render_html_diff("", "t")


class TestStatus:
    def test_summarize_drift(self):
        drifts = [
            FileDrift(name="settings", path=Path("/u/s.json"), status=DriftStatus.IDENTICAL),
            FileDrift(name="keybindings", path=Path("/u/k.json"), status=DriftStatus.SIGNIFICANT),
        ]
        assert summarize_drift(drifts).splitlines() == [
            "  settings: in sync (/u/s.json)",
            "  keybindings: changed (/u/k.json)",
        ]

    def test_format_status(self):
        text = format_status(
            mirror_dir="/home/u/cursor-settings",
            head="c" * 40,
            remote_ref="origin/master",
            remote_hash="r" * 40,
            acknowledged=None,
            acknowledged_age=None,
            drifts=[],
            editor_running=True,
        )
        assert "Mirror:        /home/u/cursor-settings" in text
        assert f"Remote tip:    {'r' * 40} [origin/master]" in text
        assert "Acknowledged:  (none) (never)" in text
        assert "Editor:        running" in text
        assert text.endswith("  (none)")

    def test_age_units(self):
        def ack(age):
            return format_status(
                mirror_dir="m", head=None, remote_ref=None, remote_hash=None,
                acknowledged="a", acknowledged_age=age, drifts=[],
                editor_running=False,
            )

        assert "(30s ago)" in ack(30)
        assert "(5m ago)" in ack(300)
        assert "(3h ago)" in ack(3 * 3600)
        assert "Remote tip:    (unresolved)\n" in ack(1)
