"""
Layered YAML configuration for cursor-sync.

Files are discovered from the most specific location to the least
specific one and merged section by section, so a project file can
override ``sync.interval`` without restating the rest of ``sync``.

String values may reference the environment as ``${VAR}`` or
``${VAR:-default}``, and a section may be kept in its own file with
``!include other.yml``.

Usage:
    from cursor_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Iterator

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CURSOR_SYNC_CONFIG"

PROJECT_CONFIG = Path(".cursor_sync") / "config.yml"
MIRROR_CONFIG = Path("cursor-settings") / "cursor-sync.yml"

# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


# ---------------------------------------------------------------------------
# Environment references
# ---------------------------------------------------------------------------


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` in *value*.

    An unset or empty variable expands to its default, or to nothing
    when there is none.  An unterminated ``${`` is kept as written.
    """
    return _ENV_REF.sub(
        lambda m: os.environ.get(m.group(1)) or (m.group(2) or ""), value
    )


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """``SafeLoader`` that also understands ``!include``.

    Included files are parsed with the plain ``SafeLoader``, so they
    cannot include further files.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    target = Path(loader.construct_scalar(node)).expanduser()
    if not target.is_absolute():
        target = Path(loader.name).resolve().parent / target
    if not target.is_file():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {loader.name})"
        )
    with open(target, encoding="utf-8") as fh:
        return yaml.safe_load(fh)


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(path: Path) -> Any:
    """Parse one config file, resolving its ``!include`` tags."""
    with open(path, encoding="utf-8") as fh:
        return yaml.load(fh, Loader=ConfigLoader)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def global_config_path() -> Path:
    """``$XDG_CONFIG_HOME/cursor_sync/config.yml`` (``~/.config`` default)."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    config_home = Path(xdg) if xdg else Path.home() / ".config"
    return config_home / "cursor_sync" / "config.yml"


def _candidates(explicit: Path | None) -> Iterator[Path]:
    if explicit is not None:
        yield explicit.expanduser().resolve()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        yield Path(env_path).expanduser().resolve()
    yield Path.cwd() / PROJECT_CONFIG
    yield global_config_path()
    yield Path.home() / MIRROR_CONFIG


def discover_config_files(explicit: Path | None = None) -> list[Path]:
    """Return existing config files, highest precedence first.

    Search order:
        1. *explicit* (the ``--config`` CLI argument).
        2. ``CURSOR_SYNC_CONFIG`` env var.
        3. ``.cursor_sync/config.yml`` in CWD.
        4. ``~/.config/cursor_sync/config.yml`` (honours XDG).
        5. ``~/cursor-settings/cursor-sync.yml``, next to the mirror.
    """
    found: list[Path] = []
    for path in _candidates(explicit):
        if path.exists() and path not in found:
            found.append(path)
    return found


# ---------------------------------------------------------------------------
# Starter file
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# cursor-sync configuration
#
# Values can reference environment variables: ${HOME}, ${VAR:-default}.
# CURSOR_SYNC_MIRROR_DIR and CURSOR_SYNC_INTERVAL override the sync section.
#
# sync:
#   mirror_dir: ~/cursor-settings
#   interval: 1200          # seconds between checks
#   debounce: 300           # ignore remote checks this soon after an ack
#   remote: origin
#   branches: [master, main]
#   notifier: auto          # auto | macos | windows | console
#   speculative_merge: auto # auto | tree | branch
#
# editor:
#   binary: /Applications/Cursor.app/Contents/MacOS/Cursor
#   process_names: [Cursor]
#   settings_path: null
#   keybindings_path: null
#
# logging:
#   level: INFO
#   file: null              # defaults to <mirror_dir>/sync.log
"""


def resolve_config_path(explicit: Path | None = None) -> Path:
    """The file ``init-config`` would write to, or the one in effect.

    The highest-precedence existing file wins; otherwise *explicit*, then
    the global path.  Nothing is created.
    """
    existing = discover_config_files(explicit)
    if existing:
        return existing[0]
    if explicit is not None:
        return explicit.expanduser()
    return global_config_path()


def ensure_config(target: Path | None = None) -> Path:
    """Write the commented starter file unless a config already exists.

    Returns:
        Path to the config file (existing or newly created).
    """
    existing = discover_config_files(target)
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = resolve_config_path(target)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def _merge_sections(base: dict[str, Any], layer: dict[str, Any]) -> None:
    for section, values in layer.items():
        current = base.get(section)
        if isinstance(current, dict) and isinstance(values, dict):
            base[section] = {**current, **values}
        else:
            base[section] = values


def load_hierarchical_config(
    explicit: Path | None = None,
) -> dict[str, Any]:
    """Load and merge every discovered config file.

    Lower-precedence files are applied first.  Within a section (``sync``,
    ``editor``, ``logging``) keys from a higher-precedence file replace
    the same keys from a lower one; other keys of that section survive.
    Environment references are expanded last.

    Returns an empty dict when no config files exist.

    Raises:
        ValueError: A file is not valid YAML or names a missing include.
    """
    paths = discover_config_files(explicit)
    if not paths:
        logger.debug("No config files found, using built-in defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except (yaml.YAMLError, OSError) as exc:
            raise ValueError(f"{path}: {exc}") from exc

        if isinstance(data, dict):
            _merge_sections(merged, data)
        elif data is not None:
            logger.warning(
                "Config file %s has a %s at the top level, skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
