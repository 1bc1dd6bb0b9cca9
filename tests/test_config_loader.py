"""Tests for cursor_sync.config_loader -- hierarchical config loading."""

import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from cursor_sync.config_loader import (
    _interpolate_recursive,
    _load_yaml_with_includes,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
    resolve_config_path,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """CWD and HOME inside tmp_path, no config env vars."""
    monkeypatch.delenv("CURSOR_SYNC_CONFIG", raising=False)
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return tmp_path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for interpolate_env_vars() and _interpolate_recursive()."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("MIRROR", "/data/mirror")
        assert interpolate_env_vars("${MIRROR}") == "/data/mirror"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("NOPE_NOT_SET", raising=False)
        assert interpolate_env_vars("a${NOPE_NOT_SET}b") == "ab"

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("SYNC_REMOTE", raising=False)
        assert interpolate_env_vars("${SYNC_REMOTE:-origin}") == "origin"

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("SYNC_REMOTE", "")
        assert interpolate_env_vars("${SYNC_REMOTE:-origin}") == "origin"

    def test_default_ignored_when_set(self, monkeypatch):
        monkeypatch.setenv("SYNC_REMOTE", "upstream")
        assert interpolate_env_vars("${SYNC_REMOTE:-origin}") == "upstream"

    def test_literal_dollar_brace_no_closing(self):
        assert interpolate_env_vars("${unclosed") == "${unclosed"

    def test_nested_structures_interpolated(self, monkeypatch):
        monkeypatch.setenv("HOST_HOME", "/home/me")
        data = {
            "sync": {"mirror_dir": "${HOST_HOME}/cursor-settings"},
            "branches": ["${BRANCH:-main}", "master"],
            "interval": 60,
        }
        result = _interpolate_recursive(data)
        assert result["sync"]["mirror_dir"] == "/home/me/cursor-settings"
        assert result["branches"] == ["main", "master"]
        assert result["interval"] == 60


# -------------------------------------------------------------------------
# !include
# -------------------------------------------------------------------------


class TestIncludeDirective:
    """Tests for the !include YAML tag."""

    def test_include_relative_file(self, tmp_path):
        (tmp_path / "editor.yml").write_text("binary: /opt/cursor\n")
        main = tmp_path / "config.yml"
        main.write_text("editor: !include editor.yml\n")
        assert _load_yaml_with_includes(main) == {
            "editor": {"binary": "/opt/cursor"}
        }

    def test_include_nonexistent_raises(self, tmp_path):
        main = tmp_path / "config.yml"
        main.write_text("editor: !include missing.yml\n")
        with pytest.raises(FileNotFoundError, match="missing.yml"):
            _load_yaml_with_includes(main)

    def test_included_file_cannot_include_again(self, tmp_path):
        (tmp_path / "a.yml").write_text("b: !include b.yml\n")
        (tmp_path / "b.yml").write_text("a: !include a.yml\n")
        with pytest.raises(yaml.constructor.ConstructorError):
            _load_yaml_with_includes(tmp_path / "a.yml")

    def test_global_safe_loader_not_polluted(self, tmp_path):
        doc = "x: !include other.yml\n"
        with pytest.raises(yaml.constructor.ConstructorError):
            yaml.safe_load(doc)


# -------------------------------------------------------------------------
# Discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    """Tests for discover_config_files() precedence and filtering."""

    def test_empty_filesystem_returns_empty(self, isolated):
        assert discover_config_files() == []

    def test_explicit_beats_env_var(self, isolated, monkeypatch):
        explicit = isolated / "explicit.yml"
        explicit.write_text("a: 1\n")
        env_cfg = isolated / "env.yml"
        env_cfg.write_text("b: 2\n")
        monkeypatch.setenv("CURSOR_SYNC_CONFIG", str(env_cfg))

        result = discover_config_files(explicit)
        assert result[:2] == [explicit.resolve(), env_cfg.resolve()]

    def test_project_before_global_before_mirror(self, isolated):
        project = Path.cwd() / ".cursor_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text("p: 1\n")
        home = isolated / "home"
        xdg = home / ".config" / "cursor_sync" / "config.yml"
        xdg.parent.mkdir(parents=True)
        xdg.write_text("g: 1\n")
        mirror = home / "cursor-settings" / "cursor-sync.yml"
        mirror.parent.mkdir()
        mirror.write_text("m: 1\n")

        assert discover_config_files() == [project, xdg, mirror]

    def test_xdg_config_home_respected(self, isolated, monkeypatch):
        xdg_home = isolated / "xdg"
        cfg = xdg_home / "cursor_sync" / "config.yml"
        cfg.parent.mkdir(parents=True)
        cfg.write_text("x: 1\n")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg_home))
        assert discover_config_files() == [cfg]

    def test_duplicates_collapsed(self, isolated, monkeypatch):
        cfg = isolated / "same.yml"
        cfg.write_text("a: 1\n")
        monkeypatch.setenv("CURSOR_SYNC_CONFIG", str(cfg))
        assert discover_config_files(cfg) == [cfg.resolve()]


# -------------------------------------------------------------------------
# Hierarchical merge
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    """Tests for load_hierarchical_config() merge and interpolation."""

    def test_zero_config_returns_empty_dict(self, isolated):
        assert load_hierarchical_config() == {}

    def test_higher_precedence_overrides_keys_within_section(
        self, isolated, monkeypatch
    ):
        home = isolated / "home"
        global_cfg = home / ".config" / "cursor_sync" / "config.yml"
        global_cfg.parent.mkdir(parents=True)
        global_cfg.write_text(
            textwrap.dedent(
                """\
                sync:
                  interval: 60
                  remote: upstream
                logging:
                  level: DEBUG
                """
            )
        )
        explicit = isolated / "explicit.yml"
        explicit.write_text("sync:\n  interval: 30\n")

        merged = load_hierarchical_config(explicit)
        assert merged["sync"] == {"interval": 30, "remote": "upstream"}
        assert merged["logging"] == {"level": "DEBUG"}

    def test_invalid_yaml_is_config_error(self, isolated):
        explicit = isolated / "broken.yml"
        explicit.write_text("sync: [unclosed\n")
        with pytest.raises(ValueError, match="broken.yml"):
            load_hierarchical_config(explicit)

    def test_missing_include_is_config_error(self, isolated):
        explicit = isolated / "c.yml"
        explicit.write_text("editor: !include gone.yml\n")
        with pytest.raises(ValueError, match="gone.yml"):
            load_hierarchical_config(explicit)

    def test_env_var_interpolation_after_merge(self, isolated, monkeypatch):
        monkeypatch.setenv("MY_MIRROR", "/srv/mirror")
        explicit = isolated / "c.yml"
        explicit.write_text("sync:\n  mirror_dir: ${MY_MIRROR}\n")
        assert load_hierarchical_config(explicit) == {
            "sync": {"mirror_dir": "/srv/mirror"}
        }

    def test_non_dict_root_skipped(self, isolated):
        explicit = isolated / "list.yml"
        explicit.write_text("- just\n- a list\n")
        assert load_hierarchical_config(explicit) == {}


# -------------------------------------------------------------------------
# Bootstrapping
# -------------------------------------------------------------------------


class TestResolveConfigPath:
    """Tests for resolve_config_path()."""

    def test_returns_highest_precedence(self):
        first = Path("/a/config.yml")
        with patch(
            "cursor_sync.config_loader.discover_config_files",
            return_value=[first, Path("/b/config.yml")],
        ):
            assert resolve_config_path() == first

    def test_default_is_xdg_global(self, isolated):
        expected = isolated / "home" / ".config" / "cursor_sync" / "config.yml"
        assert resolve_config_path() == expected


class TestEnsureConfig:
    """Tests for ensure_config()."""

    def test_noop_when_exists(self, tmp_path):
        existing = Path("/fake/existing/config.yml")
        with patch(
            "cursor_sync.config_loader.discover_config_files",
            return_value=[existing],
        ):
            assert ensure_config() == existing

    def test_creates_starter_file(self, isolated):
        target = isolated / "deep" / "dir" / "config.yml"
        result = ensure_config(target)

        assert result == target
        content = target.read_text()
        assert "# cursor-sync configuration" in content
        assert "# sync:" in content
        assert "# logging:" in content

    def test_starter_file_loads_as_empty_config(self, isolated):
        target = ensure_config(isolated / "config.yml")
        assert load_hierarchical_config(target) == {}
