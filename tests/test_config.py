"""Tests for cursor_sync.config -- OS profiles and SyncConfig assembly."""

from pathlib import Path

import pytest

from cursor_sync.config import (
    SyncConfig,
    detect_os,
    load_config,
    os_profile,
    validate_config,
)
from cursor_sync.config_schema import build_config
from cursor_sync.errors import SetupError
from cursor_sync.sync.models import FileKind


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    for var in (
        "CURSOR_SYNC_MIRROR_DIR",
        "CURSOR_SYNC_INTERVAL",
        "CURSOR_SYNC_DEBOUNCE",
        "XDG_CONFIG_HOME",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))


class TestDetectOs:
    @pytest.mark.parametrize(
        "system, expected",
        [
            ("Darwin", "macos"),
            ("Windows", "windows"),
            ("MINGW64_NT-10.0", "windows"),
            ("Linux", "linux"),
        ],
    )
    def test_known_systems(self, system, expected):
        assert detect_os(system) == expected

    def test_unknown_system_is_setup_error(self):
        with pytest.raises(SetupError, match="Unsupported"):
            detect_os("Plan9")


class TestOsProfile:
    def test_macos_paths(self, tmp_path):
        profile = os_profile("macos")
        assert profile.user_dir == (
            tmp_path / "Library" / "Application Support" / "Cursor" / "User"
        )
        assert profile.editor_binary == Path(
            "/Applications/Cursor.app/Contents/MacOS/Cursor"
        )
        assert profile.notifier == "macos"

    def test_windows_paths_use_appdata(self, tmp_path, monkeypatch):
        monkeypatch.setenv("APPDATA", str(tmp_path / "Roaming"))
        monkeypatch.setenv("LOCALAPPDATA", str(tmp_path / "Local"))
        profile = os_profile("windows")
        assert profile.user_dir == tmp_path / "Roaming" / "Cursor" / "User"
        assert profile.editor_binary == (
            tmp_path / "Local" / "Programs" / "Cursor" / "Cursor.exe"
        )
        assert profile.notifier == "windows"

    def test_linux_uses_console(self, tmp_path):
        profile = os_profile("linux")
        assert profile.user_dir == tmp_path / ".config" / "Cursor" / "User"
        assert profile.notifier == "console"


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        cfg = load_config(system="Darwin")
        assert cfg.os_type == "macos"
        assert cfg.os_label == "macOS"
        assert cfg.mirror_dir == tmp_path / "cursor-settings"
        assert cfg.interval == 1200
        assert cfg.debounce == 300
        assert cfg.branches == ("master", "main")
        assert cfg.notifier == "macos"

    def test_tracked_files_fixed_pair(self, tmp_path):
        cfg = load_config(system="Darwin")
        names = [tf.name for tf in cfg.tracked_files]
        assert names == ["settings", "keybindings"]
        assert all(tf.kind == FileKind.JSON for tf in cfg.tracked_files)
        assert cfg.tracked_mirror_names == ["settings.json", "keybindings.json"]
        assert cfg.tracked_files[0].mirror_path == (
            tmp_path / "cursor-settings" / "settings.json"
        )

    def test_state_paths_live_in_mirror(self, tmp_path):
        cfg = load_config(mirror_dir=str(tmp_path / "m"), system="Linux")
        assert cfg.hash_file == tmp_path / "m" / ".last_hash"
        assert cfg.log_file == tmp_path / "m" / "sync.log"
        assert cfg.extensions_file == tmp_path / "m" / "extensions.txt"
        assert cfg.conflicts_dir == tmp_path / "m" / "conflicts_backup"
        assert cfg.lock_file == tmp_path / "m" / ".sync.lock"

    def test_precedence_cli_env_yaml(self, tmp_path, monkeypatch):
        unified = build_config(
            {"sync": {"mirror_dir": str(tmp_path / "yaml"), "interval": 90}}
        )
        cfg = load_config(unified, system="Linux")
        assert cfg.mirror_dir == tmp_path / "yaml"
        assert cfg.interval == 90

        monkeypatch.setenv("CURSOR_SYNC_MIRROR_DIR", str(tmp_path / "env"))
        monkeypatch.setenv("CURSOR_SYNC_INTERVAL", "45")
        cfg = load_config(unified, system="Linux")
        assert cfg.mirror_dir == tmp_path / "env"
        assert cfg.interval == 45

        cfg = load_config(
            unified, mirror_dir=str(tmp_path / "cli"), interval=10, system="Linux"
        )
        assert cfg.mirror_dir == tmp_path / "cli"
        assert cfg.interval == 10

    def test_editor_overrides(self, tmp_path):
        unified = build_config(
            {
                "editor": {
                    "binary": str(tmp_path / "cursor"),
                    "process_names": ["cursor-bin"],
                    "settings_path": str(tmp_path / "s.json"),
                },
                "sync": {"notifier": "console"},
            }
        )
        cfg = load_config(unified, system="Darwin")
        assert cfg.editor_binary == tmp_path / "cursor"
        assert cfg.process_names == ("cursor-bin",)
        assert cfg.tracked_files[0].local_path == tmp_path / "s.json"
        assert cfg.notifier == "console"

    def test_bad_interval_env_raises(self, monkeypatch):
        monkeypatch.setenv("CURSOR_SYNC_INTERVAL", "often")
        with pytest.raises(ValueError, match="CURSOR_SYNC_INTERVAL"):
            load_config(system="Linux")

    def test_zero_interval_rejected(self):
        with pytest.raises(ValueError, match="interval"):
            load_config(interval=0, system="Linux")

    def test_config_is_frozen(self):
        cfg = load_config(system="Linux")
        with pytest.raises(AttributeError):
            cfg.interval = 1  # type: ignore[misc]


class TestValidateConfig:
    def test_negative_debounce(self, sync_config):
        from dataclasses import replace

        with pytest.raises(ValueError, match="debounce"):
            validate_config(replace(sync_config, debounce=-5))

    def test_valid_config_passes(self, sync_config: SyncConfig):
        validate_config(sync_config)
