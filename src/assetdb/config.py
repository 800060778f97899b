"""Configuration helpers for assetdb."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Final

from .utils.paths import coerce_required_path

__all__ = [
    "AppConfig",
    "DATABASE_ENV_VAR",
    "DATA_DIR_ENV_VAR",
    "DEFAULT_DATABASE_NAME",
    "DEFAULT_DATA_DIR",
    "configure",
    "get_config",
]

DATA_DIR_ENV_VAR: Final[str] = "ASSETDB_DATA_DIR"
"""Environment variable that overrides the default data directory."""

DATABASE_ENV_VAR: Final[str] = "ASSETDB_DATABASE"
"""Environment variable that overrides the default database file name."""

DEFAULT_DATA_DIR: Final[Path] = Path.home() / ".assetdb"
"""Directory that relative database paths are resolved against."""

DEFAULT_DATABASE_NAME: Final[str] = "AssetDatabase.db"
"""Database file used when callers do not name one."""


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Runtime configuration for the asset persistence core."""

    data_dir: Path
    database_name: str = DEFAULT_DATABASE_NAME
    open_retries: int = 3
    retry_backoff: float = 0.05
    read_timeout: float = 5.0
    max_pending_writes: int | None = None

    def __post_init__(self) -> None:
        normalized = coerce_required_path(self.data_dir)
        object.__setattr__(self, "data_dir", normalized)
        if not self.database_name.strip():
            raise ValueError("Database name cannot be empty")
        if self.open_retries < 0:
            raise ValueError("open_retries cannot be negative")
        if self.retry_backoff < 0:
            raise ValueError("retry_backoff cannot be negative")
        if self.max_pending_writes is not None and self.max_pending_writes < 1:
            raise ValueError("max_pending_writes must be at least 1")


_CONFIG: AppConfig | None = None


def get_config() -> AppConfig:
    """Return the cached :class:`AppConfig` instance."""

    global _CONFIG
    if _CONFIG is None:
        _CONFIG = _build_config()
    return _CONFIG


def configure(
    *,
    data_dir: str | Path | None = None,
    database_name: str | None = None,
    **overrides: Any,
) -> AppConfig:
    """Rebuild the global configuration with optional overrides.

    Keyword arguments other than *data_dir* and *database_name* are applied
    on top of the rebuilt configuration (e.g. ``open_retries=0``).
    """

    global _CONFIG
    config = _build_config(data_dir=data_dir, database_name=database_name)
    if overrides:
        config = replace(config, **overrides)
    _CONFIG = config
    return _CONFIG


def _build_config(
    *,
    data_dir: str | Path | None = None,
    database_name: str | None = None,
) -> AppConfig:
    if data_dir is None:
        data_dir = os.environ.get(DATA_DIR_ENV_VAR) or DEFAULT_DATA_DIR
    resolved_dir = coerce_required_path(
        data_dir,
        empty_error="Data directory overrides cannot be empty",
    )

    if database_name is None:
        database_name = os.environ.get(DATABASE_ENV_VAR) or DEFAULT_DATABASE_NAME

    return AppConfig(data_dir=resolved_dir, database_name=database_name)
