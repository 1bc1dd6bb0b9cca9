"""Runtime configuration for the sync service.

Builds one immutable ``SyncConfig`` at process start from CLI args,
environment variables, ``.env`` files, the YAML config and the OS profile.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > OS profile

Environment variables:
    CURSOR_SYNC_MIRROR_DIR: Mirror repository directory
        (default: ``~/cursor-settings``).
    CURSOR_SYNC_INTERVAL: Seconds between loop iterations (default: 1200).
    CURSOR_SYNC_DEBOUNCE: Debounce window for remote checks (default: 300).
"""

from __future__ import annotations

import logging
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path

from cursor_sync.config_schema import UnifiedConfig
from cursor_sync.errors import SetupError
from cursor_sync.sync.models import FileKind, TrackedFile

logger = logging.getLogger(__name__)

DEFAULT_MIRROR_NAME = "cursor-settings"

HASH_FILE_NAME = ".last_hash"
LOG_FILE_NAME = "sync.log"
EXTENSIONS_FILE_NAME = "extensions.txt"
CONFLICTS_DIR_NAME = "conflicts_backup"
LOCK_FILE_NAME = ".sync.lock"

# Mirror-side names are fixed regardless of OS.
SETTINGS_MIRROR_NAME = "settings.json"
KEYBINDINGS_MIRROR_NAME = "keybindings.json"

_OS_LABELS = {"macos": "macOS", "windows": "Windows", "linux": "Linux"}


# ---------------------------------------------------------------------------
# OS profile
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OSProfile:
    """Where the editor keeps its files on one operating system."""

    os_type: str
    user_dir: Path
    editor_binary: Path
    process_names: tuple[str, ...]
    notifier: str


def detect_os(system: str | None = None) -> str:
    """Map ``platform.system()`` to ``macos``, ``windows`` or ``linux``.

    Raises:
        SetupError: On any other platform.
    """
    system = system or platform.system()
    if system == "Darwin":
        return "macos"
    if system == "Windows" or system.startswith(("CYGWIN", "MINGW", "MSYS")):
        return "windows"
    if system == "Linux":
        return "linux"
    raise SetupError(f"Unsupported operating system: {system}")


def os_profile(os_type: str) -> OSProfile:
    """Return the default editor locations for *os_type*."""
    home = Path.home()
    if os_type == "macos":
        return OSProfile(
            os_type=os_type,
            user_dir=home / "Library" / "Application Support" / "Cursor" / "User",
            editor_binary=Path("/Applications/Cursor.app/Contents/MacOS/Cursor"),
            process_names=("Cursor",),
            notifier="macos",
        )
    if os_type == "windows":
        appdata = Path(os.getenv("APPDATA") or home / "AppData" / "Roaming")
        local = Path(os.getenv("LOCALAPPDATA") or home / "AppData" / "Local")
        return OSProfile(
            os_type=os_type,
            user_dir=appdata / "Cursor" / "User",
            editor_binary=local / "Programs" / "Cursor" / "Cursor.exe",
            process_names=("Cursor.exe",),
            notifier="windows",
        )
    xdg = os.getenv("XDG_CONFIG_HOME")
    config_home = Path(xdg) if xdg else home / ".config"
    return OSProfile(
        os_type=os_type,
        user_dir=config_home / "Cursor" / "User",
        editor_binary=Path("/usr/bin/cursor"),
        process_names=("cursor", "Cursor"),
        notifier="console",
    )


# ---------------------------------------------------------------------------
# SyncConfig
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyncConfig:
    """Everything a sync component needs, fixed for the life of the process.

    Attributes:
        os_type: ``macos``, ``windows`` or ``linux``.
        mirror_dir: The local clone of the remote snapshot.
        tracked_files: The settings and keybindings pairs.
        editor_binary: Editor executable used for extension commands.
        process_names: Process names meaning "the editor is running".
        interval: Seconds to sleep between loop iterations.
        debounce: Remote checks are skipped this many seconds after the
            acknowledged hash was written.
        remote: Git remote name.
        branches: Candidate remote branch names, first existing wins.
        notifier: ``macos``, ``windows`` or ``console``.
        speculative_merge: ``auto``, ``tree`` or ``branch``.
        log_level: Level name from the config file.
        log_file_override: Log file when not ``<mirror>/sync.log``.
    """

    os_type: str
    mirror_dir: Path
    tracked_files: tuple[TrackedFile, ...]
    editor_binary: Path
    process_names: tuple[str, ...]
    interval: int = 1200
    debounce: int = 300
    remote: str = "origin"
    branches: tuple[str, ...] = ("master", "main")
    notifier: str = "console"
    speculative_merge: str = "auto"
    log_level: str = "INFO"
    log_file_override: Path | None = field(default=None)

    @property
    def os_label(self) -> str:
        return _OS_LABELS.get(self.os_type, self.os_type)

    @property
    def hash_file(self) -> Path:
        return self.mirror_dir / HASH_FILE_NAME

    @property
    def log_file(self) -> Path:
        return self.log_file_override or self.mirror_dir / LOG_FILE_NAME

    @property
    def extensions_file(self) -> Path:
        return self.mirror_dir / EXTENSIONS_FILE_NAME

    @property
    def conflicts_dir(self) -> Path:
        return self.mirror_dir / CONFLICTS_DIR_NAME

    @property
    def lock_file(self) -> Path:
        return self.mirror_dir / LOCK_FILE_NAME

    @property
    def tracked_mirror_names(self) -> list[str]:
        """Mirror-relative paths of the tracked files, for path-scoped git."""
        return [tf.mirror_name for tf in self.tracked_files]


def tracked_files_for(
    mirror_dir: Path,
    settings_path: Path,
    keybindings_path: Path,
) -> tuple[TrackedFile, ...]:
    """Return the fixed (settings, keybindings) pair."""
    return (
        TrackedFile(
            name="settings",
            local_path=settings_path,
            mirror_path=mirror_dir / SETTINGS_MIRROR_NAME,
            kind=FileKind.JSON,
        ),
        TrackedFile(
            name="keybindings",
            local_path=keybindings_path,
            mirror_path=mirror_dir / KEYBINDINGS_MIRROR_NAME,
            kind=FileKind.JSON,
        ),
    )


def _int_env(key: str) -> int | None:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid {key} '{raw}': must be an integer") from None


def validate_config(config: SyncConfig) -> None:
    """Check values that the schema cannot see (env/CLI overrides).

    Raises:
        ValueError: If a numeric setting is out of range.
    """
    if config.interval < 1:
        raise ValueError(
            f"Invalid interval {config.interval}: must be at least 1 second"
        )
    if config.debounce < 0:
        raise ValueError(
            f"Invalid debounce {config.debounce}: must not be negative"
        )
    if not config.branches:
        raise ValueError("At least one remote branch name is required")


def load_config(
    unified: UnifiedConfig | None = None,
    mirror_dir: str | None = None,
    interval: int | None = None,
    system: str | None = None,
) -> SyncConfig:
    """Build the runtime ``SyncConfig``.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are visible through ``os.getenv()``.

    Args:
        unified: Validated YAML config (defaults when ``None``).
        mirror_dir: ``--mirror-dir`` CLI override.
        interval: ``--interval`` CLI override.
        system: ``platform.system()`` override, for tests.

    Raises:
        ValueError: If an env var or override is malformed.
        SetupError: If the operating system is not supported.
    """
    unified = unified or UnifiedConfig()
    sync = unified.sync
    editor = unified.editor

    os_type = detect_os(system)
    profile = os_profile(os_type)

    raw_mirror = (
        mirror_dir
        or os.getenv("CURSOR_SYNC_MIRROR_DIR")
        or sync.mirror_dir
    )
    mirror = (
        Path(raw_mirror).expanduser()
        if raw_mirror
        else Path.home() / DEFAULT_MIRROR_NAME
    )

    final_interval = interval
    if final_interval is None:
        final_interval = _int_env("CURSOR_SYNC_INTERVAL")
    if final_interval is None:
        final_interval = sync.interval

    final_debounce = _int_env("CURSOR_SYNC_DEBOUNCE")
    if final_debounce is None:
        final_debounce = sync.debounce

    settings_path = (
        Path(editor.settings_path).expanduser()
        if editor.settings_path
        else profile.user_dir / "settings.json"
    )
    keybindings_path = (
        Path(editor.keybindings_path).expanduser()
        if editor.keybindings_path
        else profile.user_dir / "keybindings.json"
    )

    notifier = profile.notifier if sync.notifier == "auto" else sync.notifier

    config = SyncConfig(
        os_type=os_type,
        mirror_dir=mirror,
        tracked_files=tracked_files_for(mirror, settings_path, keybindings_path),
        editor_binary=(
            Path(editor.binary).expanduser()
            if editor.binary
            else profile.editor_binary
        ),
        process_names=tuple(editor.process_names or profile.process_names),
        interval=final_interval,
        debounce=final_debounce,
        remote=sync.remote,
        branches=tuple(sync.branches),
        notifier=notifier,
        speculative_merge=sync.speculative_merge,
        log_level=unified.logging.level,
        log_file_override=(
            Path(unified.logging.file).expanduser()
            if unified.logging.file
            else None
        ),
    )
    validate_config(config)
    logger.debug("Loaded config for %s, mirror %s", config.os_label, mirror)
    return config
