"""Tests for the ``assetdb`` command line interface."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from assetdb.cli import main


def _args(tmp_path: Path, *extra: str) -> list[str]:
    return ["--data-dir", str(tmp_path / "cli"), "--database", "cli.db", *extra]


def test_init_creates_tables(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(_args(tmp_path, "init")) == 0

    output = capsys.readouterr().out
    assert "Prop, Weapon" in output
    with sqlite3.connect(tmp_path / "cli" / "cli.db") as raw:
        tables = {row[0] for row in raw.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert {"Prop", "Weapon"} <= tables


def test_add_and_find_props(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert (
        main(
            _args(
                tmp_path,
                "add-prop",
                "--name",
                "stool",
                "--path",
                "Assets/Resources/stool.prefab",
                "--primary-color",
                "red|blue",
                "--emits-light",
            )
        )
        == 0
    )
    assert "Added 'stool' as row 1" in capsys.readouterr().out

    assert main(_args(tmp_path, "find-props", "--primary-color", "RED|BLUE")) == 0
    found = capsys.readouterr().out
    assert "path=Assets/Resources/stool.prefab" in found
    assert "primary_color=136" in found
    assert "emits_light=True" in found

    assert main(_args(tmp_path, "find-props", "--name", "table")) == 1
    assert "found 0" in capsys.readouterr().err


def test_duplicate_add_fails(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    command = _args(tmp_path, "add-prop", "--name", "crate", "--path", "Assets/crate.prefab")
    assert main(command) == 0
    assert main(command) == 1
    assert "Could not add Assets/crate.prefab" in capsys.readouterr().err


def test_enum_options_are_validated(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        main(_args(tmp_path, "find-props", "--size", "gigantic"))
    with pytest.raises(SystemExit):
        main(_args(tmp_path, "find-props", "--prop-type", "lever|button"))


def test_reset_removes_database(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    database = tmp_path / "cli" / "cli.db"
    assert main(_args(tmp_path, "init")) == 0
    assert database.exists()
    capsys.readouterr()

    assert main(_args(tmp_path, "reset", "--dry-run")) == 0
    assert "[dry-run] Would remove:" in capsys.readouterr().out
    assert database.exists()

    assert main(_args(tmp_path, "reset", "--yes")) == 0
    assert not database.exists()

    assert main(_args(tmp_path, "reset", "--yes")) == 0
    assert "No database files found" in capsys.readouterr().out


def test_reset_can_be_aborted(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    database = tmp_path / "cli" / "cli.db"
    assert main(_args(tmp_path, "init")) == 0
    monkeypatch.setattr("builtins.input", lambda prompt: "n")

    assert main(_args(tmp_path, "reset")) == 1
    assert database.exists()


def test_invalid_values_are_reported_without_traceback(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert main(_args(tmp_path, "add-prop", "--name", "x" * 41, "--path", "Assets/long.prefab")) == 1
    assert "exceeds 40 characters" in capsys.readouterr().err

    assert main(_args(tmp_path, "find-props", "--count", "0")) == 1
    assert "--count must be at least 1" in capsys.readouterr().err
    assert not (tmp_path / "cli" / "cli.db").exists()
