"""Derive table schemas and statements from descriptor declarations.

Every concrete descriptor variant maps onto one table.  The table is named
after the variant class with a trailing ``Descriptor``/``Desc`` removed and
holds one column per public dataclass field, in declaration order:

=====================  ===================================
Field type             Column type
=====================  ===================================
``int``, integer enum  ``INTEGER``
``bool``               ``TINYINT`` (stored as ``0``/``1``)
``float``              ``REAL``
``str``                ``TEXT`` or ``VARCHAR(n)`` when the
                       field declares a ``varchar`` length
=====================  ===================================

Any other field type is a configuration error and raises
:class:`~assetdb.errors.SchemaError`.  Derivation is deterministic, so the
``CREATE TABLE`` text for a variant is byte-identical across calls and its
column order always matches the ``INSERT`` statements built here.
"""

from __future__ import annotations

import dataclasses
import enum
import functools
import typing
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from .commands import (
    DEFAULT_VARCHAR_SIZE,
    InsertBuilder,
    SelectBuilder,
    SQLType,
    TableBuilder,
    validate_identifier,
)
from .descriptors import CONSTRAINT_KEY, VARCHAR_KEY, AssetDescriptor
from .errors import SchemaError

__all__ = [
    "ColumnSpec",
    "TABLE_NAME_SUFFIXES",
    "build_create_table",
    "build_insert",
    "build_select",
    "derive_columns",
    "derive_table_name",
    "describe_values",
    "descriptor_from_row",
    "match_criteria",
]

DescriptorT = TypeVar("DescriptorT", bound=AssetDescriptor)

TABLE_NAME_SUFFIXES: tuple[str, ...] = ("Descriptor", "Desc")
"""Suffixes removed from variant class names, longest first."""


@dataclass(frozen=True, slots=True)
class ColumnSpec:
    """Column derived from a single descriptor field."""

    name: str
    sql_type: SQLType
    constraint: str = ""
    size: int = DEFAULT_VARCHAR_SIZE
    python_type: type = str

    @property
    def definition(self) -> str:
        """Return the column definition as it appears in ``CREATE TABLE``."""

        type_text = str(self.sql_type)
        if self.sql_type is SQLType.VARCHAR:
            type_text = f"{type_text}({self.size})"
        return " ".join(part for part in (self.name, type_text, self.constraint) if part)


def _variant_class(variant: type[AssetDescriptor] | AssetDescriptor) -> type[AssetDescriptor]:
    return variant if isinstance(variant, type) else type(variant)


def derive_table_name(variant: type[AssetDescriptor] | AssetDescriptor) -> str:
    """Return the table name for *variant* (a class or an instance).

    Exactly one trailing suffix is removed; names without a suffix are
    returned unchanged.
    """

    name = _variant_class(variant).__name__
    for suffix in TABLE_NAME_SUFFIXES:
        if name.endswith(suffix) and len(name) > len(suffix):
            name = name[: -len(suffix)]
            break
    return validate_identifier(name)


def _sql_type_for(annotation: Any, field_name: str, owner: str) -> SQLType:
    if typing.get_origin(annotation) is not None or not isinstance(annotation, type):
        raise SchemaError(
            f"{owner}.{field_name} has unsupported type {annotation!r}; "
            "only int, bool, float, str and integer enums can be stored"
        )
    if issubclass(annotation, bool):
        return SQLType.TINYINT
    if issubclass(annotation, enum.Enum):
        if not all(isinstance(member.value, int) for member in annotation):
            raise SchemaError(f"{owner}.{field_name} uses enum {annotation.__name__} with non-integer values")
        return SQLType.INTEGER
    if issubclass(annotation, int):
        return SQLType.INTEGER
    if issubclass(annotation, float):
        return SQLType.REAL
    if issubclass(annotation, str):
        return SQLType.TEXT
    raise SchemaError(
        f"{owner}.{field_name} has unsupported type {annotation.__name__}; "
        "only int, bool, float, str and integer enums can be stored"
    )


@functools.lru_cache(maxsize=None)
def _columns_for(cls: type[AssetDescriptor]) -> tuple[ColumnSpec, ...]:
    if not dataclasses.is_dataclass(cls):
        raise SchemaError(f"{cls.__name__} is not a dataclass descriptor")
    try:
        hints = typing.get_type_hints(cls)
    except Exception as exc:
        raise SchemaError(f"Cannot resolve field types of {cls.__name__}: {exc}") from exc

    columns: list[ColumnSpec] = []
    for descriptor_field in dataclasses.fields(cls):
        if descriptor_field.name.startswith("_"):
            continue
        annotation = hints.get(descriptor_field.name)
        sql_type = _sql_type_for(annotation, descriptor_field.name, cls.__name__)
        size = DEFAULT_VARCHAR_SIZE
        varchar = descriptor_field.metadata.get(VARCHAR_KEY)
        if varchar is not None:
            if sql_type is not SQLType.TEXT:
                raise SchemaError(f"{cls.__name__}.{descriptor_field.name} is not a string but declares a VARCHAR length")
            sql_type = SQLType.VARCHAR
            size = int(varchar)
        columns.append(
            ColumnSpec(
                name=validate_identifier(descriptor_field.name),
                sql_type=sql_type,
                constraint=descriptor_field.metadata.get(CONSTRAINT_KEY, ""),
                size=size,
                python_type=annotation,
            )
        )

    if not columns:
        raise SchemaError(f"{cls.__name__} declares no storable fields")
    return tuple(columns)


def derive_columns(variant: type[AssetDescriptor] | AssetDescriptor) -> tuple[ColumnSpec, ...]:
    """Return the columns of *variant* in field declaration order."""

    return _columns_for(_variant_class(variant))


def build_create_table(
    variant: type[AssetDescriptor] | AssetDescriptor,
    *,
    temporary: bool = False,
) -> str:
    """Return the idempotent ``CREATE TABLE`` statement for *variant*."""

    builder = TableBuilder().begin(derive_table_name(variant), temporary=temporary)
    for spec in derive_columns(variant):
        builder.add_column(spec.name, spec.sql_type, spec.constraint, spec.size)
    return builder.build()


def describe_values(descriptor: AssetDescriptor) -> dict[str, Any]:
    """Return the storable values of *descriptor* keyed and ordered by column."""

    values = descriptor.column_values()
    return {spec.name: values[spec.name] for spec in derive_columns(descriptor)}


def build_insert(descriptor: AssetDescriptor) -> InsertBuilder:
    """Return an insert builder populated with every column of *descriptor*."""

    builder = InsertBuilder(derive_table_name(descriptor))
    for column, value in describe_values(descriptor).items():
        builder.insert(column, value)
    return builder


def match_criteria(descriptor: AssetDescriptor) -> dict[str, Any]:
    """Return the fields of *descriptor* that differ from the variant defaults.

    The read path matches these fields with a conjunctive equality filter; a
    default constructed descriptor therefore matches every row.
    """

    defaults = describe_values(type(descriptor)())
    return {
        column: value
        for column, value in describe_values(descriptor).items()
        if value != defaults[column]
    }


def build_select(descriptor: AssetDescriptor, count: int | None = None) -> tuple[str, dict[str, Any]]:
    """Return a ``SELECT`` matching *descriptor* in insertion order."""

    builder = SelectBuilder(derive_table_name(descriptor))
    builder.columns(*(spec.name for spec in derive_columns(descriptor)))
    for column, value in match_criteria(descriptor).items():
        builder.where(column, value)
    builder.order_by("rowid")
    if count is not None:
        builder.limit(count)
    return builder.build()


def _restore_value(spec: ColumnSpec, value: Any) -> Any:
    python_type = spec.python_type
    if issubclass(python_type, bool):
        return bool(value)
    if issubclass(python_type, enum.Enum):
        return python_type(int(value))
    return python_type(value)


def descriptor_from_row(variant: type[DescriptorT], row: Mapping[str, Any]) -> DescriptorT:
    """Rebuild a *variant* descriptor from a database row mapping.

    Columns missing from *row* or holding ``NULL`` keep the field default.
    """

    kwargs: dict[str, Any] = {}
    for spec in derive_columns(variant):
        value = row.get(spec.name)
        if value is None:
            continue
        try:
            kwargs[spec.name] = _restore_value(spec, value)
        except (TypeError, ValueError) as exc:
            raise SchemaError(f"Cannot restore {variant.__name__}.{spec.name} from {value!r}") from exc
    return variant(**kwargs)
