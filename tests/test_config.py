from __future__ import annotations

from pathlib import Path

import pytest

from assetdb.config import (
    DATA_DIR_ENV_VAR,
    DATABASE_ENV_VAR,
    DEFAULT_DATA_DIR,
    DEFAULT_DATABASE_NAME,
    AppConfig,
    configure,
    get_config,
)
from assetdb.utils.paths import MEMORY_DATABASE, resolve_database_path


def test_default_configuration() -> None:
    """Without overrides the database lives in ~/.assetdb/AssetDatabase.db."""

    configure()
    config = get_config()

    assert config.data_dir == DEFAULT_DATA_DIR.resolve()
    assert config.database_name == DEFAULT_DATABASE_NAME == "AssetDatabase.db"
    assert config.max_pending_writes is None


def test_configure_overrides(tmp_path: Path) -> None:
    override = tmp_path / "assets"
    config = configure(data_dir=override, database_name="Props.db", open_retries=0)

    assert get_config() is config
    assert config.data_dir == override.resolve()
    assert config.database_name == "Props.db"
    assert config.open_retries == 0


def test_environment_override(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv(DATA_DIR_ENV_VAR, str(tmp_path / "env"))
    monkeypatch.setenv(DATABASE_ENV_VAR, "Env.db")
    configure()

    config = get_config()
    assert config.data_dir == (tmp_path / "env").resolve()
    assert config.database_name == "Env.db"


@pytest.mark.parametrize(
    "overrides",
    [
        {"database_name": " "},
        {"open_retries": -1},
        {"retry_backoff": -0.5},
        {"max_pending_writes": 0},
    ],
)
def test_invalid_configuration_rejected(tmp_path: Path, overrides: dict) -> None:
    with pytest.raises(ValueError):
        AppConfig(data_dir=tmp_path, **overrides)


def test_resolve_database_path(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"

    relative = resolve_database_path("AssetDatabase.db", data_dir=data_dir)
    absolute = resolve_database_path(tmp_path / "elsewhere" / "a.db", data_dir=data_dir)

    assert relative == str((data_dir / "AssetDatabase.db").resolve())
    assert data_dir.is_dir()
    assert absolute == str((tmp_path / "elsewhere" / "a.db").resolve())
    assert resolve_database_path(MEMORY_DATABASE, data_dir=data_dir) == ":memory:"
    with pytest.raises(ValueError):
        resolve_database_path("", data_dir=data_dir)
