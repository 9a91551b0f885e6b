"""SQLite dialect."""

import logging
import urllib.parse
from typing import Any, ClassVar, Mapping

from ..column import Column, ColumnKind
from ..schema import Index, Schema

from .base import Dialect

logger = logging.getLogger(__name__)


class SqliteDialect(Dialect):
    """Dialect for SQLite (scheme sqlite).

    AUTOINCREMENT is only allowed on an `INTEGER PRIMARY KEY` column, so a
    serial column renders its primary key inline and only works as the sole
    primary key. UPDATE and DELETE cannot join other tables.
    """

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("sqlite",)

    NAME: ClassVar[str] = "sqlite"

    def connect(self, url: str):
        import sqlite3
        parsed = urllib.parse.urlparse(url)
        path = (parsed.path or "")[1:] or parsed.hostname
        logger.info("Connecting to SQLite database %s", path)
        conn = sqlite3.connect(path, isolation_level=None)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def render_type_name(self, column: Column, name: str = "?") -> str:
        if column.kind in (ColumnKind.TEXT, ColumnKind.BLOB):
            return column.kind.value.upper()
        return super().render_type_name(column, name)

    def render_column_constraint(self, column: Column, name: str = "?") -> str:
        constraint = ""
        if column.kind is ColumnKind.SERIAL:
            if not column.primary:
                raise self._rendering_error(name, "AUTOINCREMENT requires the column to be the primary key")
            constraint += " PRIMARY KEY AUTOINCREMENT"
        constraint += " NULL" if column.null else " NOT NULL"
        if column.default is not None:
            constraint += " DEFAULT " + self.render_default(column.default)
        if column.unique:
            constraint += " UNIQUE"
        if column.collate:
            constraint += f" COLLATE {column.collate}"
        return constraint.lstrip()

    def renders_primary_constraint(self, schema: Schema) -> bool:
        primary = schema.primary_columns
        serials = [name for name in primary if schema[name].kind is ColumnKind.SERIAL]
        if serials and len(primary) > 1:
            raise self._rendering_error(
                serials[0], "a serial column cannot be part of a composite primary key"
            )
        return bool(primary) and not serials

    def index_name(self, table_name: str, index: Index) -> str:
        # index names are database-wide in SQLite
        return index.name or f"{table_name}_{index.default_name}"

    def render_insert(self, table_name: str, values: Mapping[str, Any],
                      ignore: bool = False, upsert: bool = False) -> tuple[str, list[Any]]:
        verb = "INSERT OR REPLACE" if upsert else "INSERT OR IGNORE" if ignore else "INSERT"
        table = self.quote_identifier(table_name)
        if not values:
            return f"{verb} INTO {table} DEFAULT VALUES", []
        holders = ", ".join("?" for _ in values)
        sql = f"{verb} INTO {table} ({self.quote_identifiers(values)}) VALUES ({holders})"
        return sql, list(values.values())

    def render_order_by_field(self, field: str, literals: list[str]) -> str:
        cases = " ".join(f"WHEN {literal} THEN {position}" for position, literal in enumerate(literals))
        return f"CASE {field} {cases} ELSE {len(literals)} END"

    def render_truncate(self, table_name: str) -> list[str]:
        return [f"DELETE FROM {self.quote_identifier(table_name)}"]

    def table_exists_statement(self, table_name: str) -> tuple[str, list[Any]]:
        return "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", [table_name]
