"""Command-line entry point: ``cursor-sync``.

Subcommands:
    run          Start the sync loop (the startup service runs this).
    install      Clone the remote snapshot and register the startup service.
    status       Show mirror, hash and per-file drift state.
    push / pull  Run one reconciliation action without prompting.
    init-config  Write a commented starter config file.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from cursor_sync import __version__
from cursor_sync.backends.editor import EditorExtensions
from cursor_sync.backends.git import GitRepository, RepositoryBackend
from cursor_sync.backends.notify import ConfirmationBackend, make_notifier
from cursor_sync.config import SyncConfig, load_config
from cursor_sync.config_loader import ensure_config, load_hierarchical_config
from cursor_sync.config_schema import build_config
from cursor_sync.errors import GitError, SetupError
from cursor_sync.installer import install, initial_setup, require_mirror, seed_hash
from cursor_sync.logger import setup_logging
from cursor_sync.sync.actions import Reconciler
from cursor_sync.sync.conflict import ConflictResolver
from cursor_sync.sync.local_drift import LocalDriftDetector
from cursor_sync.sync.lock import SingleInstanceLock
from cursor_sync.sync.remote_drift import RemoteDriftDetector
from cursor_sync.sync.reporter import format_status
from cursor_sync.sync.scheduler import Scheduler
from cursor_sync.sync.state import FileHashStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Runtime:
    """The collaborators for one process, wired from a ``SyncConfig``."""

    config: SyncConfig
    repo: RepositoryBackend
    hash_store: FileHashStore
    extensions: EditorExtensions
    notifier: ConfirmationBackend
    resolver: ConflictResolver
    reconciler: Reconciler
    local: LocalDriftDetector
    remote: RemoteDriftDetector


def build_runtime(
    config: SyncConfig,
    repo: RepositoryBackend | None = None,
    notifier: ConfirmationBackend | None = None,
) -> Runtime:
    repo = repo or GitRepository(config.mirror_dir)
    notifier = notifier or make_notifier(config)
    hash_store = FileHashStore(config.hash_file)
    extensions = EditorExtensions(config.editor_binary, config.process_names)
    resolver = ConflictResolver(config, repo, notifier)
    reconciler = Reconciler(config, repo, hash_store, extensions, resolver)
    return Runtime(
        config=config,
        repo=repo,
        hash_store=hash_store,
        extensions=extensions,
        notifier=notifier,
        resolver=resolver,
        reconciler=reconciler,
        local=LocalDriftDetector(config),
        remote=RemoteDriftDetector(config, repo, hash_store),
    )


def _load_config(args: argparse.Namespace) -> SyncConfig:
    load_dotenv()
    explicit = Path(args.config) if args.config else None
    unified = build_config(load_hierarchical_config(explicit))
    return load_config(
        unified,
        mirror_dir=args.mirror_dir,
        interval=getattr(args, "interval", None),
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_run(args: argparse.Namespace, config: SyncConfig) -> int:
    rt = build_runtime(config)
    require_mirror(config, rt.repo)
    setup_logging(
        mode="daemon",
        debug=args.debug,
        log_file=args.log_file or str(config.log_file),
        level=config.log_level,
    )
    with SingleInstanceLock(config.lock_file):
        rt.remote.recover()
        seed_hash(config, rt.repo, rt.hash_store)
        initial_setup(config, rt.repo, rt.reconciler)
        scheduler = Scheduler(
            config,
            rt.local,
            rt.remote,
            rt.reconciler,
            rt.notifier,
            skip_initial_checks=args.skip_initial_checks,
        )
        scheduler.run_forever(max_iterations=1 if args.once else None)
    return 0


def cmd_install(args: argparse.Namespace, config: SyncConfig) -> int:
    result = install(
        args.gist_url,
        config,
        reconciler_factory=lambda repo: build_runtime(config, repo=repo).reconciler,
        register=not args.no_service,
    )
    print(f"Mirror:        {result.mirror_dir}")
    print(f"Acknowledged:  {result.acknowledged}")
    for path in result.linked:
        print(f"Linked:        {path}")
    if result.service_file:
        print(f"Service:       {result.service_file}")
    print("Setup complete! Start syncing with: cursor-sync run --skip-initial-checks")
    return 0


def cmd_status(args: argparse.Namespace, config: SyncConfig) -> int:
    rt = build_runtime(config)
    require_mirror(config, rt.repo)
    try:
        head = rt.repo.head()
    except GitError:
        head = None
    tip = rt.repo.remote_tip(config.remote, config.branches)
    print(
        format_status(
            mirror_dir=str(config.mirror_dir),
            head=head,
            remote_ref=f"{config.remote}/{tip[0]}" if tip else None,
            remote_hash=tip[1] if tip else None,
            acknowledged=rt.hash_store.read(),
            acknowledged_age=rt.hash_store.age(),
            drifts=[rt.local.compare(tf) for tf in config.tracked_files],
            editor_running=rt.extensions.is_running(),
        )
    )
    return 0


def cmd_push(args: argparse.Namespace, config: SyncConfig) -> int:
    rt = build_runtime(config)
    require_mirror(config, rt.repo)
    rt.remote.recover()
    return 0 if rt.reconciler.push().success else 1


def cmd_pull(args: argparse.Namespace, config: SyncConfig) -> int:
    rt = build_runtime(config)
    require_mirror(config, rt.repo)
    rt.remote.recover()
    return 0 if rt.reconciler.pull().success else 1


_COMMANDS = {
    "run": cmd_run,
    "install": cmd_install,
    "status": cmd_status,
    "push": cmd_push,
    "pull": cmd_pull,
}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cursor-sync",
        description="Keep Cursor settings, keybindings and extensions in "
        "sync with a git-hosted snapshot (e.g. a GitHub Gist)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One-time setup from an existing Gist
  cursor-sync install https://gist.github.com/you/abcd1234

  # Run the loop in the foreground
  cursor-sync run

  # Check once without waiting, using a different mirror
  cursor-sync --mirror-dir ~/work-settings run --once

Environment variables:
  CURSOR_SYNC_MIRROR_DIR, CURSOR_SYNC_INTERVAL, CURSOR_SYNC_DEBOUNCE,
  CURSOR_SYNC_CONFIG, LOG_LEVEL (values may also come from a .env file)
        """,
    )
    parser.add_argument(
        "--config",
        help="Config file path (takes precedence over CURSOR_SYNC_CONFIG and discovered files)",
    )
    parser.add_argument(
        "--mirror-dir",
        help="Mirror repository directory (takes precedence over CURSOR_SYNC_MIRROR_DIR)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--log-file",
        help="Log file path (default for 'run': <mirror>/sync.log)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"cursor-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="Start the sync loop")
    run_p.add_argument(
        "--skip-initial-checks",
        action="store_true",
        help="Skip the remote check on the first iteration only",
    )
    run_p.add_argument(
        "--once", action="store_true", help="Run a single iteration and exit"
    )
    run_p.add_argument(
        "--interval",
        type=int,
        help="Seconds between iterations (takes precedence over CURSOR_SYNC_INTERVAL)",
    )

    install_p = sub.add_parser(
        "install", help="Clone the Gist and register the startup service"
    )
    install_p.add_argument("gist_url", help="Clone URL of the settings Gist")
    install_p.add_argument(
        "--no-service",
        action="store_true",
        help="Do not register the startup service",
    )

    sub.add_parser("status", help="Show sync state")
    sub.add_parser("push", help="Push local settings now, without prompting")
    sub.add_parser("pull", help="Pull remote settings now, without prompting")
    sub.add_parser("init-config", help="Write a starter config file")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "init-config":
        setup_logging(mode="cli", debug=args.debug, log_file=args.log_file)
        path = ensure_config(Path(args.config) if args.config else None)
        print(path)
        return 0

    try:
        config = _load_config(args)
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except SetupError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        mode="cli",
        debug=args.debug,
        log_file=args.log_file,
        level=config.log_level,
    )

    try:
        return _COMMANDS[args.command](args, config)
    except SetupError as exc:
        logger.error("%s", exc)
        return 1


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
