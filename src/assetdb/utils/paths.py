"""Utilities for coercing user-provided values into :class:`~pathlib.Path` objects."""

from __future__ import annotations

from os import PathLike
from pathlib import Path

__all__ = ["MEMORY_DATABASE", "coerce_required_path", "resolve_database_path"]

MEMORY_DATABASE = ":memory:"
"""SQLite marker for a private in-memory database."""


def _normalize_path(path: Path) -> Path:
    return path.expanduser().resolve()


def coerce_required_path(
    value: str | Path | PathLike[str],
    *,
    empty_error: str | None = None,
) -> Path:
    """Return *value* coerced into an absolute :class:`~pathlib.Path`.

    Parameters
    ----------
    value:
        Path-like object that must resolve to a non-empty filesystem location.
    empty_error:
        Optional custom error message raised when *value* cannot be coerced
        because it resolves to an empty string.
    """

    if isinstance(value, Path):
        candidate = value
    else:
        text = str(value).strip()
        if not text:
            msg = empty_error or "Path value cannot be empty."
            raise ValueError(msg)
        candidate = Path(text)

    return _normalize_path(candidate)


def resolve_database_path(
    database: str | Path | PathLike[str],
    *,
    data_dir: Path,
) -> str:
    """Return the location SQLite should open for *database*.

    Relative names are placed inside *data_dir*, which is created on demand.
    Absolute paths are used as given and ``:memory:`` passes through untouched.
    """

    if str(database) == MEMORY_DATABASE:
        return MEMORY_DATABASE

    candidate = Path(database).expanduser()
    if not str(candidate).strip() or str(candidate) == ".":
        raise ValueError("Database path cannot be empty.")
    if not candidate.is_absolute():
        candidate = data_dir / candidate
    candidate = _normalize_path(candidate)
    candidate.parent.mkdir(parents=True, exist_ok=True)
    return str(candidate)
