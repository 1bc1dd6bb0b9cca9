"""One-time setup and the startup work shared with ``cursor-sync run``.

``install()`` clones the remote snapshot into the mirror directory, links
the editor's settings files to their mirror copies, records the initial
acknowledged hash and registers the loop as a login-time service:

* macOS: a LaunchAgent plist, loaded with ``launchctl``.
* Windows: a ``.bat`` file in the Startup folder, launched with
  ``--skip-initial-checks``.
* Linux: a systemd user unit, written but not enabled.
"""

from __future__ import annotations

import logging
import os
import plistlib
import re
import shlex
import shutil
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from pydantic import BaseModel

from cursor_sync.backends.git import GitRepository
from cursor_sync.errors import GitError, SetupError
from cursor_sync.sync.actions import COMMIT_TIME_FORMAT
from cursor_sync.sync.state import FileHashStore

if TYPE_CHECKING:
    from cursor_sync.backends.git import RepositoryBackend
    from cursor_sync.config import SyncConfig
    from cursor_sync.sync.actions import Reconciler
    from cursor_sync.sync.state import HashStore

logger = logging.getLogger(__name__)

LAUNCH_AGENT_LABEL = "com.user.cursorsync"
SERVICE_NAME = "cursor-sync"
BACKUP_SUFFIX = ".backup"


class InstallResult(BaseModel):
    """What ``install()`` set up.

    Attributes:
        mirror_dir: The cloned mirror.
        linked: Local files replaced by symlinks.
        acknowledged: The hash seeded into the marker file.
        service_file: The startup definition written, if any.
    """

    mirror_dir: Path
    linked: list[Path] = []
    acknowledged: str
    service_file: Path | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Remote URL
# ---------------------------------------------------------------------------


def gist_id(url: str) -> str:
    """Return the last path segment of *url* (the gist id).

    Raises:
        SetupError: If the URL has no usable final segment.
    """
    segment = re.split(r"[/:]", url.strip().rstrip("/"))[-1]
    if segment.endswith(".git"):
        segment = segment[: -len(".git")]
    if not segment or ("/" not in url and ":" not in url):
        raise SetupError(
            f"Invalid Gist URL '{url}'. Provide a valid GitHub Gist URL."
        )
    return segment


# ---------------------------------------------------------------------------
# Startup work shared with ``run``
# ---------------------------------------------------------------------------


def link_settings(config: SyncConfig) -> list[Path]:
    """Replace each real settings file with a symlink to its mirror copy.

    The original is kept as ``<file>.backup``.  Files that are already
    symlinks, or that do not exist, are left alone.  When the platform
    refuses to create a symlink the local file stays a plain copy and
    the loop keeps the two in step by copying.

    Returns:
        The local paths that are now symlinks.
    """
    linked: list[Path] = []
    for tf in config.tracked_files:
        local = tf.local_path
        if local.is_symlink() or not local.is_file():
            continue
        logger.info("Setting up symlink for %s", local)
        shutil.copy2(local, local.with_name(local.name + BACKUP_SUFFIX))
        tf.mirror_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(local, tf.mirror_path)
        local.unlink()
        try:
            local.symlink_to(tf.mirror_path)
        except OSError as exc:
            logger.warning(
                "Could not symlink %s (%s); keeping a copy instead", local, exc
            )
            shutil.copy2(tf.mirror_path, local)
            continue
        logger.info("Created symlink: %s -> %s", local, tf.mirror_path)
        linked.append(local)
    return linked


LOCAL_STATE_PATTERNS = (".last_hash", "sync.log", ".sync.lock", "*.tmp")


def exclude_local_state(config: SyncConfig) -> None:
    """List per-machine state files in ``.git/info/exclude``."""
    exclude = config.mirror_dir / ".git" / "info" / "exclude"
    if not exclude.parent.parent.is_dir():
        return
    existing = exclude.read_text(encoding="utf-8") if exclude.exists() else ""
    present = set(existing.splitlines())
    missing = [p for p in LOCAL_STATE_PATTERNS if p not in present]
    if not missing:
        return
    exclude.parent.mkdir(parents=True, exist_ok=True)
    prefix = "" if not existing or existing.endswith("\n") else "\n"
    with open(exclude, "a", encoding="utf-8") as fh:
        fh.write(prefix + "\n".join(missing) + "\n")
    logger.debug("Excluded local state files: %s", ", ".join(missing))


def initial_setup(
    config: SyncConfig,
    repo: RepositoryBackend,
    reconciler: Reconciler,
    clock: Callable[[], datetime] = datetime.now,
) -> bool:
    """Link settings, export extensions and commit whatever that changed.

    Returns:
        True if an initial commit was made and pushed.
    """
    logger.info("Performing initial setup...")
    exclude_local_state(config)
    link_settings(config)
    reconciler.export_extensions()

    if not repo.status_porcelain().strip():
        logger.info("No changes to commit in initial setup")
        return False

    logger.info("Committing initial setup...")
    try:
        repo.add_all()
        repo.commit(
            f"Initial setup on {config.os_label} at "
            f"{clock().strftime(COMMIT_TIME_FORMAT)}"
        )
        repo.push()
    except GitError as exc:
        logger.error("Initial setup commit failed: %s", exc)
        return False
    return True


def seed_hash(
    config: SyncConfig,
    repo: RepositoryBackend,
    hash_store: HashStore,
    overwrite: bool = False,
) -> str | None:
    """Write the remote tip (or HEAD) as the acknowledged hash.

    Leaves an existing marker alone unless *overwrite*.
    """
    if not overwrite and hash_store.read() is not None:
        return None
    tip = repo.remote_tip(config.remote, config.branches)
    commit = tip[1] if tip else repo.head()
    hash_store.write(commit)
    logger.info("Acknowledged hash initialised to %s", commit[:7])
    return commit


def require_mirror(config: SyncConfig, repo: RepositoryBackend) -> None:
    """Raise ``SetupError`` unless the mirror exists and is a git clone."""
    if not config.mirror_dir.is_dir():
        raise SetupError(
            f"Mirror directory {config.mirror_dir} does not exist. "
            "Run 'cursor-sync install <gist-url>' first."
        )
    if not repo.is_repository():
        raise SetupError(
            f"{config.mirror_dir} is not a git repository. "
            "Run 'cursor-sync install <gist-url>' first."
        )


# ---------------------------------------------------------------------------
# Service definitions
# ---------------------------------------------------------------------------


def service_command(config: SyncConfig, skip_initial_checks: bool = False) -> list[str]:
    """The command line a startup service runs."""
    argv = [
        sys.executable,
        "-m",
        "cursor_sync",
        "--mirror-dir",
        str(config.mirror_dir),
        "run",
    ]
    if skip_initial_checks:
        argv.append("--skip-initial-checks")
    return argv


def launch_agent_plist(argv: list[str], log_dir: Path) -> bytes:
    return plistlib.dumps(
        {
            "Label": LAUNCH_AGENT_LABEL,
            "ProgramArguments": argv,
            "RunAtLoad": True,
            "KeepAlive": False,
            "StandardOutPath": str(log_dir / "launchd.out.log"),
            "StandardErrorPath": str(log_dir / "launchd.err.log"),
        }
    )


def startup_batch(argv: list[str]) -> str:
    command = subprocess.list2cmdline(argv)
    return f'@echo off\r\nstart "" /B {command}\r\n'


def systemd_unit(argv: list[str]) -> str:
    return (
        "[Unit]\n"
        "Description=Cursor settings sync\n"
        "After=network-online.target\n"
        "\n"
        "[Service]\n"
        "Type=simple\n"
        f"ExecStart={shlex.join(argv)}\n"
        "Restart=on-failure\n"
        "\n"
        "[Install]\n"
        "WantedBy=default.target\n"
    )


def register_service(
    config: SyncConfig,
    home: Path | None = None,
    runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> Path:
    """Write (and on macOS load) the startup definition for this OS.

    Raises:
        SetupError: If ``launchctl load`` fails.
    """
    home = home or Path.home()

    if config.os_type == "macos":
        path = home / "Library" / "LaunchAgents" / f"{LAUNCH_AGENT_LABEL}.plist"
        path.parent.mkdir(parents=True, exist_ok=True)
        log_dir = home / "Library" / "Logs" / SERVICE_NAME
        path.write_bytes(launch_agent_plist(service_command(config), log_dir))
        runner(["launchctl", "unload", str(path)], capture_output=True, text=True)
        result = runner(["launchctl", "load", str(path)], capture_output=True, text=True)
        if result.returncode != 0:
            raise SetupError(f"launchctl load failed: {result.stderr.strip()}")
        logger.info(
            "LaunchAgent installed. Cursor Settings Sync will start "
            "automatically on login."
        )
        return path

    if config.os_type == "windows":
        appdata = Path(os.getenv("APPDATA") or home / "AppData" / "Roaming")
        startup = appdata / "Microsoft" / "Windows" / "Start Menu" / "Programs" / "Startup"
        path = startup / f"{SERVICE_NAME}.bat"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            startup_batch(service_command(config, skip_initial_checks=True)),
            encoding="utf-8",
            newline="",
        )
        logger.info("Startup script written to %s", path)
        return path

    xdg = os.getenv("XDG_CONFIG_HOME")
    config_home = Path(xdg) if xdg else home / ".config"
    path = config_home / "systemd" / "user" / f"{SERVICE_NAME}.service"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(systemd_unit(service_command(config)), encoding="utf-8")
    logger.info(
        "Systemd user unit written to %s. Enable it with: "
        "systemctl --user enable --now %s",
        path,
        SERVICE_NAME,
    )
    return path


# ---------------------------------------------------------------------------
# install
# ---------------------------------------------------------------------------


def install(
    url: str,
    config: SyncConfig,
    reconciler_factory: Callable[[RepositoryBackend], Reconciler],
    register: bool = True,
    home: Path | None = None,
) -> InstallResult:
    """Clone *url* into the mirror directory and prepare the loop.

    Args:
        url: The remote (Gist) clone URL.
        config: Runtime configuration.
        reconciler_factory: Builds the reconciler for the cloned repository;
            used for the initial extension export.
        register: Also register the startup service.
        home: Home directory override, for tests.

    Raises:
        SetupError: On an invalid URL, a non-empty foreign mirror directory,
            a failed clone or a failed service registration.
    """
    gist_id(url)
    mirror = config.mirror_dir
    logger.info("Setting up Cursor Settings Sync in %s", mirror)

    repo = GitRepository(mirror)
    if mirror.is_dir() and any(mirror.iterdir()):
        if not repo.is_repository():
            raise SetupError(
                f"{mirror} exists and is not an empty directory or a git clone"
            )
        logger.info("Mirror already cloned, reusing %s", mirror)
    else:
        logger.info("Cloning Gist repository...")
        try:
            repo = GitRepository.clone(url, mirror)
        except GitError as exc:
            raise SetupError(
                f"Failed to clone {url}. Check the URL and your git "
                f"configuration. ({exc})"
            ) from exc

    hash_store = FileHashStore(config.hash_file)
    seed_hash(config, repo, hash_store, overwrite=True)

    reconciler = reconciler_factory(repo)
    committed = initial_setup(config, repo, reconciler)
    if committed:
        hash_store.write(repo.head())

    service_file = register_service(config, home=home) if register else None
    logger.info("Setup complete. Log file: %s", config.log_file)
    return InstallResult(
        mirror_dir=mirror,
        linked=[
            tf.local_path
            for tf in config.tracked_files
            if tf.local_path.is_symlink()
        ],
        acknowledged=hash_store.read() or "",
        service_file=service_file,
    )
