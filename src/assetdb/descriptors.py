"""Asset descriptor definitions.

A descriptor is a flat record describing one asset: where it lives
(``path``), what it is called (``name``) and a handful of variant specific
attributes.  Every concrete variant is a dataclass whose fields are limited
to ``int``, ``bool``, ``float``, ``str`` and integer enums; the schema module
turns those declarations into one table per variant.

Field metadata set through :func:`column` carries the storage details that
the Python type alone cannot express:

* ``varchar`` – maximum length of a string column (stored as ``VARCHAR(n)``).
* ``constraint`` – column constraint text such as ``NOT NULL UNIQUE``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields
from typing import Any, Final

__all__ = [
    "AssetColor",
    "AssetDescriptor",
    "AssetSize",
    "AssetTheme",
    "CONSTRAINT_KEY",
    "NAME_MAX_LENGTH",
    "PropDescriptor",
    "PropType",
    "VARCHAR_KEY",
    "WeaponDescriptor",
    "WeaponType",
    "column",
]

VARCHAR_KEY: Final[str] = "varchar"
"""Field metadata key holding the maximum length of a string column."""

CONSTRAINT_KEY: Final[str] = "constraint"
"""Field metadata key holding a column constraint."""

NAME_MAX_LENGTH: Final[int] = 40
"""Maximum number of characters allowed in a descriptor name."""


def column(default: Any, *, varchar: int | None = None, constraint: str = "") -> Any:
    """Return a dataclass field carrying column storage hints."""

    metadata: dict[str, Any] = {}
    if varchar is not None:
        if varchar < 1:
            raise ValueError("VARCHAR length must be positive")
        metadata[VARCHAR_KEY] = varchar
    if constraint:
        metadata[CONSTRAINT_KEY] = constraint
    return field(default=default, metadata=metadata)


class AssetSize(enum.IntFlag):
    """Coarse classification of how large an asset is."""

    TINY = 1
    SMALL = 2
    MEDIUM = 4
    LARGE = 8
    HUGE = 16


class AssetColor(enum.IntFlag):
    WHITE = 1
    GREY = 2
    BLACK = 4
    RED = 8
    ORANGE = 16
    YELLOW = 32
    GREEN = 64
    BLUE = 128
    PURPLE = 256
    BROWN = 512


class AssetTheme(enum.IntFlag):
    GENERIC = 1


class PropType(enum.IntEnum):
    PROP = 0
    LEVER = 1
    BUTTON = 2


class WeaponType(enum.IntEnum):
    MELEE = 0
    RANGED = 1
    THROWN = 2


@dataclass
class AssetDescriptor:
    """Base class for every asset descriptor variant.

    Subclasses add their own typed fields; the base contributes ``path`` (the
    natural key of an asset) and ``name``.  Instances are short lived: they
    are built right before a write and handed to the asset manager, which
    does not keep them once the write finished.
    """

    path: str = column("", constraint="NOT NULL UNIQUE")
    name: str = column("", varchar=NAME_MAX_LENGTH)

    def __post_init__(self) -> None:
        if len(self.name) > NAME_MAX_LENGTH:
            raise ValueError(
                f"Descriptor name {self.name!r} exceeds {NAME_MAX_LENGTH} characters"
            )

    def column_values(self) -> dict[str, Any]:
        """Return the storable value of every field in declaration order.

        Enum members are reduced to their integer value; everything else is
        returned unchanged.
        """

        values: dict[str, Any] = {}
        for descriptor_field in fields(self):
            value = getattr(self, descriptor_field.name)
            if isinstance(value, enum.Enum):
                value = int(value.value)
            values[descriptor_field.name] = value
        return values


@dataclass
class PropDescriptor(AssetDescriptor):
    """Describe a static or interactive prop placed in a level."""

    prop_type: PropType = PropType.PROP
    size: AssetSize = AssetSize.MEDIUM
    primary_color: AssetColor = AssetColor.WHITE
    secondary_color: AssetColor = AssetColor(0)
    emits_light: bool = False
    light_color: AssetColor = AssetColor(0)
    theme: AssetTheme = AssetTheme.GENERIC


@dataclass
class WeaponDescriptor(AssetDescriptor):
    """Describe a weapon asset."""

    weapon_type: WeaponType = WeaponType.MELEE
    size: AssetSize = AssetSize.MEDIUM
    damage: float = 0.0
    two_handed: bool = False
    theme: AssetTheme = AssetTheme.GENERIC
