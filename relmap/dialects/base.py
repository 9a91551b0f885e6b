"""Base Dialect type: DDL rendering, quoting and dialect-specific DML fragments.

Subclasses implement connect() and the few renderers that differ between
engines (type names, column constraints, INSERT flavour, ORDER BY FIELD).
"""

import datetime
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Mapping

from pydantic import BaseModel

from ..column import Column, ColumnKind, CURRENT_TIME_DEFAULTS
from ..errors import RenderingError
from ..schema import Index, Schema
from ..utils.format_datetime import format_datetime


class Dialect(BaseModel, ABC):
    """Base for database dialects; rendering methods are pure, connect() opens a driver connection."""

    model_config = {"arbitrary_types_allowed": True}

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ()
    """URL schemes this dialect handles (e.g. ('sqlite',))."""

    NAME: ClassVar[str] = ""

    IDENTIFIER_QUOTE: ClassVar[str] = "`"

    LIMIT_MAX: ClassVar[int] = 9223372036854775807
    """Row count used for `LIMIT offset, <max>` when only an offset is set."""

    supports_update_join: ClassVar[bool] = False
    """True if UPDATE can span the tables of an inheritance chain in one statement."""

    supports_delete_join: ClassVar[bool] = False

    @abstractmethod
    def connect(self, url: str) -> Any:
        """Return a new raw DB-API connection for the given URL.

        The return value is engine-specific (e.g. sqlite3.Connection, pymysql.Connection).
        """
        ...  # pylint: disable=unnecessary-ellipsis

    # quoting

    def quote_identifier(self, name: str) -> str:
        quote = self.IDENTIFIER_QUOTE
        return quote + name.replace(quote, quote * 2) + quote

    def quote_identifiers(self, names) -> str:
        return ", ".join(self.quote_identifier(name) for name in names)

    def quote_literal(self, value: Any) -> str:
        """Render a value as an SQL literal."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, (bytes, bytearray)):
            return "X'" + bytes(value).hex() + "'"
        if isinstance(value, (datetime.date, datetime.time)):
            value = format_datetime(value) if isinstance(value, datetime.date) else value.isoformat()
        return "'" + str(value).replace("'", "''") + "'"

    def cast_value(self, value: Any) -> Any:
        """Convert a Python value to what the driver stores."""
        if isinstance(value, bool):
            return int(value)
        return format_datetime(value)

    def translate_placeholders(self, sql: str) -> str:
        """Return `sql` using the driver's parameter style; statements are written with `?`."""
        return sql

    # column rendering

    def _rendering_error(self, name: str, message: str) -> RenderingError:
        return RenderingError(
            f"{self.NAME}: cannot render column `{name}`: {message}",
            column=name,
            dialect=self.NAME,
        )

    def render_type_name(self, column: Column, name: str = "?") -> str:
        """Map a column to its SQL type name."""
        kind = column.kind
        if kind is ColumnKind.BOOLEAN:
            return "BOOLEAN"
        if kind in (ColumnKind.INTEGER, ColumnKind.SERIAL, ColumnKind.FOREIGN):
            return "INTEGER"
        if kind is ColumnKind.DECIMAL:
            if column.approximate:
                return f"FLOAT({column.precision})" if column.precision else "FLOAT"
            if column.precision:
                return f"DECIMAL({column.precision}, {column.scale or 0})"
            return "DECIMAL"
        if kind is ColumnKind.CHARACTER:
            return f"CHAR({column.size})" if column.fixed else f"VARCHAR({column.size})"
        if kind is ColumnKind.BINARY:
            return f"BINARY({column.size})" if column.fixed else f"VARBINARY({column.size})"
        if kind is ColumnKind.TEXT:
            return f"{column.size or ''}TEXT"
        if kind is ColumnKind.BLOB:
            return f"{column.size or ''}BLOB"
        if kind is ColumnKind.DATE:
            return "DATE"
        if kind is ColumnKind.TIME:
            return "TIME"
        if kind is ColumnKind.DATETIME:
            return "DATETIME"
        if kind is ColumnKind.TIMESTAMP:
            return "TIMESTAMP"
        raise self._rendering_error(name, f"don't know what to do with {kind!r}")

    @abstractmethod
    def render_column_constraint(self, column: Column, name: str = "?") -> str:
        """Render NULL/DEFAULT/UNIQUE/... for a column definition."""
        ...  # pylint: disable=unnecessary-ellipsis

    def render_default(self, default: Any) -> str:
        if default in CURRENT_TIME_DEFAULTS:
            return default
        return self.quote_literal(default)

    def render_column_definition(self, name: str, column: Column) -> str:
        definition = f"{self.quote_identifier(name)} {self.render_type_name(column, name)}"
        constraint = self.render_column_constraint(column, name)
        if constraint:
            definition += " " + constraint
        return definition

    # table rendering

    def renders_primary_constraint(self, schema: Schema) -> bool:
        return schema.primary is not None

    def render_table_constraints(self, schema: Schema) -> list[str]:
        constraints = []
        if self.renders_primary_constraint(schema):
            constraints.append(f"PRIMARY KEY ({self.quote_identifiers(schema.primary_columns)})")
        for index in schema.indexes:
            # unnamed unique indexes are table constraints, the others are created separately
            if index.unique and not index.name:
                constraints.append(f"UNIQUE ({self.quote_identifiers(index.columns)})")
        return constraints

    def render_table_options(self, schema: Schema) -> list[str]:
        return []

    def render_create_table(self, table_name: str, schema: Schema) -> str:
        """Render the CREATE TABLE statement, without the separate CREATE INDEX ones."""
        column_defs = ",\n".join(
            self.render_column_definition(name, column) for name, column in schema.items()
        )
        table_constraints = ",\n".join(self.render_table_constraints(schema))
        table_options = " ".join(self.render_table_options(schema))
        sql = f"CREATE TABLE {self.quote_identifier(table_name)} (\n{column_defs}"
        if table_constraints:
            sql += f",\n\n{table_constraints}"
        sql += "\n)"
        if table_options:
            sql += " " + table_options
        return sql + ";"

    def index_name(self, table_name: str, index: Index) -> str:
        return index.default_name

    def render_create_index(self, table_name: str, index: Index) -> str:
        unique = "UNIQUE " if index.unique else ""
        return (
            f"CREATE {unique}INDEX {self.quote_identifier(self.index_name(table_name, index))}"
            f" ON {self.quote_identifier(table_name)} ({self.quote_identifiers(index.columns)});"
        )

    def render_create_indexes(self, table_name: str, schema: Schema) -> list[str]:
        return [
            self.render_create_index(table_name, index)
            for index in schema.indexes
            if index.name or not index.unique
        ]

    def render_drop_table(self, table_name: str, if_exists: bool = False) -> str:
        return f"DROP TABLE {'IF EXISTS ' if if_exists else ''}{self.quote_identifier(table_name)}"

    # statements

    @abstractmethod
    def render_insert(self, table_name: str, values: Mapping[str, Any],
                      ignore: bool = False, upsert: bool = False) -> tuple[str, list[Any]]:
        """Return the INSERT statement for `values` and its positional arguments."""
        ...  # pylint: disable=unnecessary-ellipsis

    @abstractmethod
    def render_order_by_field(self, field: str, literals: list[str]) -> str:
        """Order by the position of `field` in the list of (already quoted) literals."""
        ...  # pylint: disable=unnecessary-ellipsis

    @abstractmethod
    def render_truncate(self, table_name: str) -> list[str]:
        ...  # pylint: disable=unnecessary-ellipsis

    @abstractmethod
    def table_exists_statement(self, table_name: str) -> tuple[str, list[Any]]:
        ...  # pylint: disable=unnecessary-ellipsis
