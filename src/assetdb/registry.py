"""Registry of the descriptor variants known to the program."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from .descriptors import AssetDescriptor, PropDescriptor, WeaponDescriptor
from .errors import RegistryError, SchemaError, UnknownVariantError
from .schema import ColumnSpec, derive_columns, derive_table_name

__all__ = ["BUILTIN_VARIANTS", "DescriptorRegistry", "RegisteredVariant"]

logger = logging.getLogger(__name__)

BUILTIN_VARIANTS: tuple[type[AssetDescriptor], ...] = (PropDescriptor, WeaponDescriptor)
"""Descriptor variants shipped with the package, in table creation order."""


@dataclass(frozen=True, slots=True)
class RegisteredVariant:
    """A descriptor variant together with its default instance and table."""

    tag: str
    variant: type[AssetDescriptor]
    default: AssetDescriptor
    table_name: str
    columns: tuple[ColumnSpec, ...]


class DescriptorRegistry:
    """Closed set of descriptor variants validated at construction.

    Every variant is default constructed once and its schema derived, so a
    variant that cannot be stored fails here, at start-up, rather than on its
    first write.
    """

    def __init__(self, variants: Iterable[type[AssetDescriptor]] | None = None) -> None:
        candidates = tuple(BUILTIN_VARIANTS if variants is None else variants)
        if not candidates:
            raise RegistryError("At least one descriptor variant must be registered")

        entries: dict[type[AssetDescriptor], RegisteredVariant] = {}
        tables: dict[str, str] = {}
        for variant in candidates:
            entry = self._register(variant)
            if variant in entries:
                raise RegistryError(f"{variant.__name__} is registered more than once")
            owner = tables.get(entry.table_name)
            if owner is not None:
                raise RegistryError(
                    f"{variant.__name__} and {owner} both map onto table {entry.table_name}"
                )
            tables[entry.table_name] = variant.__name__
            entries[variant] = entry
            logger.debug("Registered descriptor %s -> table %s", entry.tag, entry.table_name)

        self._entries = entries

    @staticmethod
    def _register(variant: type[AssetDescriptor]) -> RegisteredVariant:
        if not isinstance(variant, type) or not issubclass(variant, AssetDescriptor):
            raise RegistryError(f"{variant!r} is not an AssetDescriptor subclass")
        if variant is AssetDescriptor or inspect.isabstract(variant):
            raise RegistryError(f"{variant.__name__} is abstract and cannot be registered")

        try:
            default = variant()
        except Exception as exc:
            raise RegistryError(f"Cannot default construct {variant.__name__}: {exc}") from exc

        try:
            table_name = derive_table_name(default)
            columns = derive_columns(default)
        except SchemaError as exc:
            raise RegistryError(f"{variant.__name__} cannot be stored: {exc}") from exc

        return RegisteredVariant(
            tag=variant.__name__,
            variant=variant,
            default=default,
            table_name=table_name,
            columns=columns,
        )

    def __iter__(self) -> Iterator[RegisteredVariant]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, item: object) -> bool:
        variant = item if isinstance(item, type) else type(item)
        return variant in self._entries

    def all_variants(self) -> tuple[RegisteredVariant, ...]:
        """Return every registered variant in registration order."""

        return tuple(self._entries.values())

    def lookup(self, variant: type[AssetDescriptor] | AssetDescriptor) -> RegisteredVariant:
        """Return the entry for *variant* (a class or an instance)."""

        cls = variant if isinstance(variant, type) else type(variant)
        try:
            return self._entries[cls]
        except KeyError:
            raise UnknownVariantError(f"{cls.__name__} is not a registered descriptor variant") from None
