"""Basic smoke tests for the assetdb package."""

from __future__ import annotations

import importlib


def test_package_importable() -> None:
    """Ensure that the top-level package can be imported."""

    module = importlib.import_module("assetdb")
    assert module.__version__ == "0.1.0"
    assert module.AssetManager.__name__ == "AssetManager"
