"""Top-level package for the assetdb asset persistence core.

The package persists asset descriptors (props, weapons, ...) into a SQLite
database and retrieves matching assets again.  Most callers only need
:class:`~assetdb.manager.AssetManager` and the descriptor classes.
"""

from __future__ import annotations

from .descriptors import (
    AssetColor,
    AssetDescriptor,
    AssetSize,
    AssetTheme,
    PropDescriptor,
    PropType,
    WeaponDescriptor,
    WeaponType,
)
from .manager import AssetManager, WriteTask

__all__ = [
    "AssetColor",
    "AssetDescriptor",
    "AssetManager",
    "AssetSize",
    "AssetTheme",
    "PropDescriptor",
    "PropType",
    "WeaponDescriptor",
    "WeaponType",
    "WriteTask",
    "__version__",
]

__version__ = "0.1.0"
