"""Unified configuration schema for cursor_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the sync loop, the editor installation and logging.
``cursor_sync.config.load_config()`` turns a validated ``UnifiedConfig``
plus CLI overrides into the immutable runtime ``SyncConfig``.

Usage:
    from cursor_sync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SyncSection(BaseModel):
    """Settings for the polling loop and the mirror repository.

    All fields are optional so that env vars and CLI args can supply
    them at runtime instead.
    """

    mirror_dir: str | None = Field(
        default=None,
        description="Git clone holding the mirrored settings",
    )
    interval: int = Field(
        default=1200,
        ge=1,
        description="Seconds to sleep between loop iterations",
    )
    debounce: int = Field(
        default=300,
        ge=0,
        description="Skip remote checks this many seconds after an ack",
    )
    remote: str = Field(default="origin", description="Git remote name")
    branches: list[str] = Field(
        default_factory=lambda: ["master", "main"],
        min_length=1,
        description="Remote branch names, first existing one wins",
    )
    notifier: Literal["auto", "macos", "windows", "console"] = "auto"
    speculative_merge: Literal["auto", "tree", "branch"] = Field(
        default="auto",
        description="How remote changes are classified before prompting",
    )

    model_config = {"frozen": True}


class EditorSection(BaseModel):
    """Editor installation overrides.  ``None`` means OS-profile default."""

    binary: str | None = Field(
        default=None, description="Editor CLI used for extensions"
    )
    process_names: list[str] | None = Field(
        default=None, description="Process names that mean 'editor running'"
    )
    settings_path: str | None = None
    keybindings_path: str | None = None

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path (defaults to ``<mirror>/sync.log``).
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    sync: SyncSection = Field(default_factory=SyncSection)
    editor: EditorSection = Field(default_factory=EditorSection)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Raises:
        ValueError: If a section fails validation.  The pydantic error is
            chained so the full report is still available.
    """
    if not raw_data:
        return UnifiedConfig()

    try:
        return UnifiedConfig(**raw_data)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
