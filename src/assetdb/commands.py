"""Fluent builders assembling SQLite statements.

The builders are plain string assembly helpers: they know nothing about the
tables that exist in a database, so callers are responsible for passing
column names that match the schema they target.  Identifiers are restricted
to plain ``[A-Za-z_][A-Za-z0-9_]*`` names because they are embedded in the
statement text; values are either rendered as escaped literals
(:meth:`InsertBuilder.build`) or passed as bound parameters
(:meth:`InsertBuilder.build_parameterized`, :meth:`SelectBuilder.build`).
"""

from __future__ import annotations

import enum
import re
from typing import Any, Final

from .errors import SchemaError

__all__ = [
    "DEFAULT_VARCHAR_SIZE",
    "InsertBuilder",
    "SQLType",
    "SelectBuilder",
    "TableBuilder",
    "render_literal",
    "validate_identifier",
]

DEFAULT_VARCHAR_SIZE: Final[int] = 20
"""Length used for ``VARCHAR`` columns when none is supplied."""

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLType(enum.StrEnum):
    """Column types understood by the table builder."""

    INTEGER = "INTEGER"
    TINYINT = "TINYINT"
    SMALLINT = "SMALLINT"
    REAL = "REAL"
    VARCHAR = "VARCHAR"
    TEXT = "TEXT"
    BLOB = "BLOB"


def validate_identifier(name: str) -> str:
    """Return *name* when it is a plain SQL identifier, raise otherwise."""

    if not isinstance(name, str) or not _IDENTIFIER_PATTERN.match(name):
        raise SchemaError(f"Invalid SQL identifier: {name!r}")
    return name


def render_literal(value: Any) -> str:
    """Return the SQL literal text for *value*.

    Booleans become ``1``/``0``, enum members their integer value and strings
    are single quoted with embedded quotes doubled.
    """

    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, enum.Enum):
        return str(int(value.value))
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    if isinstance(value, int | float):
        return str(value)
    raise TypeError(f"Cannot render {type(value).__name__} values as SQL literals")


def _bind_value(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, enum.Enum):
        return int(value.value)
    if value is None or isinstance(value, str | int | float):
        return value
    raise TypeError(f"Cannot bind {type(value).__name__} values")


class TableBuilder:
    """Assemble a ``CREATE TABLE`` statement one column at a time.

    Example
    -------
    >>> TableBuilder().begin("Prop").add_column("name", SQLType.VARCHAR, size=40).build()
    'CREATE TABLE IF NOT EXISTS Prop (name VARCHAR(40));'
    """

    def __init__(self) -> None:
        self._name: str | None = None
        self._temporary = False
        self._if_not_exists = True
        self._columns: list[str] = []

    def begin(
        self,
        name: str,
        temporary: bool = False,
        if_not_exists: bool = True,
    ) -> TableBuilder:
        """Start a new table definition, discarding any previous one."""

        self._name = validate_identifier(name)
        self._temporary = temporary
        self._if_not_exists = if_not_exists
        self._columns = []
        return self

    def add_column(
        self,
        name: str,
        sql_type: SQLType | str,
        constraint: str = "",
        size: int = DEFAULT_VARCHAR_SIZE,
    ) -> TableBuilder:
        """Append a column definition.

        *size* only applies to ``VARCHAR`` columns.  *constraint* is copied
        verbatim after the type (e.g. ``NOT NULL``).
        """

        if self._name is None:
            raise SchemaError("begin() must be called before add_column()")
        try:
            column_type = SQLType(sql_type)
        except ValueError as exc:
            raise SchemaError(f"Unsupported column type: {sql_type!r}") from exc

        type_text = str(column_type)
        if column_type is SQLType.VARCHAR:
            if size < 1:
                raise SchemaError(f"VARCHAR size must be positive, got {size}")
            type_text = f"{type_text}({size})"

        parts = [validate_identifier(name), type_text]
        if constraint.strip():
            parts.append(constraint.strip())
        self._columns.append(" ".join(parts))
        return self

    @property
    def column_count(self) -> int:
        return len(self._columns)

    def build(self) -> str:
        """Return the finished statement text."""

        if self._name is None:
            raise SchemaError("begin() must be called before build()")
        if not self._columns:
            raise SchemaError(f"Table {self._name} has no columns")

        prefix = "CREATE TEMP TABLE " if self._temporary else "CREATE TABLE "
        if self._if_not_exists:
            prefix += "IF NOT EXISTS "
        return f"{prefix}{self._name} ({', '.join(self._columns)});"


class InsertBuilder:
    """Assemble an ``INSERT`` statement for a fixed table."""

    def __init__(self, table_name: str) -> None:
        self._table_name = validate_identifier(table_name)
        self._columns: list[str] = []
        self._values: list[Any] = []

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def columns(self) -> tuple[str, ...]:
        """Return the columns added so far in call order."""

        return tuple(self._columns)

    def insert(self, column: str, value: Any) -> InsertBuilder:
        """Add a column/value pair."""

        validate_identifier(column)
        if column in self._columns:
            raise ValueError(f"Column {column!r} was already added")
        # Fail early on values neither form can represent.
        _bind_value(value)
        self._columns.append(column)
        self._values.append(value)
        return self

    def _prefix(self) -> str:
        if not self._columns:
            raise SchemaError(f"No values were added for table {self._table_name}")
        return f"INSERT INTO {self._table_name} ({', '.join(self._columns)}) VALUES"

    def build(self) -> str:
        """Return the statement with every value rendered as a literal."""

        literals = ", ".join(render_literal(value) for value in self._values)
        return f"{self._prefix()} ({literals});"

    def build_parameterized(self) -> tuple[str, dict[str, Any]]:
        """Return the statement with named placeholders and its parameters."""

        placeholders = ", ".join(f":{column}" for column in self._columns)
        params = {
            column: _bind_value(value)
            for column, value in zip(self._columns, self._values, strict=True)
        }
        return f"{self._prefix()} ({placeholders});", params


class SelectBuilder:
    """Assemble a parameterized ``SELECT`` with conjunctive equality filters."""

    def __init__(self, table_name: str) -> None:
        self._table_name = validate_identifier(table_name)
        self._columns: list[str] = []
        self._conditions: list[tuple[str, Any]] = []
        self._order_by: list[str] = []
        self._limit: int | None = None

    def columns(self, *names: str) -> SelectBuilder:
        """Restrict the selected columns; all columns are selected by default."""

        self._columns.extend(validate_identifier(name) for name in names)
        return self

    def where(self, column: str, value: Any) -> SelectBuilder:
        """Require ``column = value``; repeated calls are joined with ``AND``."""

        self._conditions.append((validate_identifier(column), _bind_value(value)))
        return self

    def order_by(self, column: str, descending: bool = False) -> SelectBuilder:
        direction = " DESC" if descending else ""
        self._order_by.append(f"{validate_identifier(column)}{direction}")
        return self

    def limit(self, count: int) -> SelectBuilder:
        if count < 0:
            raise ValueError("LIMIT cannot be negative")
        self._limit = count
        return self

    def build(self) -> tuple[str, dict[str, Any]]:
        """Return the statement text and its bound parameters."""

        selected = ", ".join(self._columns) if self._columns else "*"
        sql = f"SELECT {selected} FROM {self._table_name}"
        params: dict[str, Any] = {}
        if self._conditions:
            clauses = []
            for index, (column, value) in enumerate(self._conditions):
                key = f"p{index}"
                params[key] = value
                clauses.append(f"{column} = :{key}")
            sql += " WHERE " + " AND ".join(clauses)
        if self._order_by:
            sql += " ORDER BY " + ", ".join(self._order_by)
        if self._limit is not None:
            sql += f" LIMIT {self._limit}"
        return sql + ";", params
