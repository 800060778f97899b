"""Pytest configuration helpers for assetdb tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the source directory is importable without requiring an editable install.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


@pytest.fixture(autouse=True)
def reset_app_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run each test against a configuration rooted in its temporary directory."""

    from assetdb.config import DATA_DIR_ENV_VAR, DATABASE_ENV_VAR, configure

    monkeypatch.delenv(DATA_DIR_ENV_VAR, raising=False)
    monkeypatch.delenv(DATABASE_ENV_VAR, raising=False)
    configure(data_dir=tmp_path / "data")
    yield
    configure(data_dir=tmp_path / "data")
