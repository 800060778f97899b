"""Tests covering the descriptor registry."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from assetdb.descriptors import AssetDescriptor, PropDescriptor, WeaponDescriptor
from assetdb.errors import RegistryError, SchemaError, UnknownVariantError
from assetdb.registry import BUILTIN_VARIANTS, DescriptorRegistry


@dataclass
class BrokenDescriptor(AssetDescriptor):
    def __post_init__(self) -> None:
        raise RuntimeError("cannot build")


@dataclass
class ListDescriptor(AssetDescriptor):
    items: list[int] = field(default_factory=list)


@dataclass
class PropDesc(AssetDescriptor):
    pass


def test_builtin_variants_are_registered() -> None:
    registry = DescriptorRegistry()

    entries = registry.all_variants()

    assert [entry.tag for entry in entries] == ["PropDescriptor", "WeaponDescriptor"]
    assert [entry.table_name for entry in entries] == ["Prop", "Weapon"]
    assert tuple(entry.variant for entry in entries) == BUILTIN_VARIANTS
    assert entries[0].default == PropDescriptor()
    assert entries[1].columns[0].name == "path"
    assert len(registry) == 2


def test_lookup_by_class_or_instance() -> None:
    registry = DescriptorRegistry([WeaponDescriptor])

    assert registry.lookup(WeaponDescriptor).table_name == "Weapon"
    assert registry.lookup(WeaponDescriptor(name="axe")).tag == "WeaponDescriptor"
    assert WeaponDescriptor in registry
    assert PropDescriptor() not in registry
    with pytest.raises(UnknownVariantError):
        registry.lookup(PropDescriptor)


@pytest.mark.parametrize(
    "variants",
    [
        [BrokenDescriptor],
        [ListDescriptor],
        [AssetDescriptor],
        [PropDescriptor, PropDescriptor],
        [PropDescriptor, PropDesc],
        [str],
        [],
    ],
)
def test_invalid_registrations_are_fatal(variants) -> None:
    with pytest.raises(RegistryError):
        DescriptorRegistry(variants)


def test_registry_errors_are_schema_errors() -> None:
    with pytest.raises(SchemaError, match="cannot be stored"):
        DescriptorRegistry([ListDescriptor])
