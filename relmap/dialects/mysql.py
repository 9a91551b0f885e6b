"""MySQL dialect."""

import logging
import urllib.parse
from typing import Any, ClassVar, Mapping

from ..column import Column, ColumnKind, CURRENT_TIME_DEFAULTS
from ..schema import Schema

from .base import Dialect

logger = logging.getLogger(__name__)

_INTEGER_TYPES = {
    1: "TINYINT",
    2: "SMALLINT",
    3: "MEDIUMINT",
    4: "INT",
    8: "BIGINT",
}

_QUOTES = ("'", '"', "`")


class MysqlDialect(Dialect):
    """Dialect for MySQL (scheme mysql).

    Inserts use `INSERT ... SET`, updates and deletes may span joined tables.
    """

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("mysql",)

    NAME: ClassVar[str] = "mysql"

    LIMIT_MAX: ClassVar[int] = 18446744073709551615

    supports_update_join: ClassVar[bool] = True

    supports_delete_join: ClassVar[bool] = True

    def connect(self, url: str):
        import pymysql  # pylint: disable=import-outside-toplevel,import-error
        parsed = urllib.parse.urlparse(url)
        logger.info("Connecting to MySQL database %s on %s", (parsed.path or "")[1:], parsed.hostname)
        return pymysql.connect(
            host=parsed.hostname,
            user=parsed.username,
            password=parsed.password,
            database=(parsed.path or "")[1:] or None,
            port=parsed.port or 3306,
            charset="utf8mb4",
            autocommit=True,
        )

    def quote_literal(self, value: Any) -> str:
        if isinstance(value, str):
            value = value.replace("\\", "\\\\")
        return super().quote_literal(value)

    def translate_placeholders(self, sql: str) -> str:
        """Replace `?` placeholders with `%s` and escape `%`, as pymysql formats the statement."""
        translated = []
        quote = None
        escaped = False
        for char in sql:
            if char == "%":
                translated.append("%%")
                continue
            if quote:
                if escaped:
                    escaped = False
                elif char == "\\" and quote != "`":
                    escaped = True
                elif char == quote:
                    quote = None
                translated.append(char)
                continue
            if char in _QUOTES:
                quote = char
            elif char == "?":
                translated.append("%s")
                continue
            translated.append(char)
        return "".join(translated)

    def render_type_name(self, column: Column, name: str = "?") -> str:
        kind = column.kind
        if kind in (ColumnKind.INTEGER, ColumnKind.SERIAL, ColumnKind.FOREIGN):
            return _INTEGER_TYPES[column.size]
        if kind is ColumnKind.DECIMAL:
            if column.approximate and (column.precision or 0) > 53:
                raise self._rendering_error(name, f"FLOAT precision must be at most 53, given: {column.precision}")
            if not column.approximate and (column.precision or 0) > 65:
                raise self._rendering_error(name, f"DECIMAL precision must be at most 65, given: {column.precision}")
        if kind in (ColumnKind.CHARACTER, ColumnKind.BINARY) and not column.fixed and column.size > 65535:
            raise self._rendering_error(name, f"variable length must be at most 65535, given: {column.size}")
        return super().render_type_name(column, name)

    def render_default(self, default: Any) -> str:
        if default in CURRENT_TIME_DEFAULTS:
            return f"({default})"
        return super().render_default(default)

    def render_column_constraint(self, column: Column, name: str = "?") -> str:
        constraint = ""
        if column.unsigned and column.kind is not ColumnKind.BOOLEAN:
            constraint += " UNSIGNED"
        constraint += " NULL" if column.null else " NOT NULL"
        if column.auto_increment:
            constraint += " AUTO_INCREMENT"
        if column.default is not None:
            if column.kind in (ColumnKind.TEXT, ColumnKind.BLOB):
                raise self._rendering_error(name, f"{column.kind.value} columns cannot have a default value")
            constraint += " DEFAULT " + self.render_default(column.default)
        if column.unique:
            constraint += " UNIQUE"
        if column.collate:
            constraint += f" COLLATE {column.collate}"
        if column.comment:
            constraint += f" COMMENT {self.quote_literal(column.comment)}"
        return constraint.lstrip()

    def render_table_options(self, schema: Schema) -> list[str]:
        return ["COLLATE utf8_general_ci"]

    def render_insert(self, table_name: str, values: Mapping[str, Any],
                      ignore: bool = False, upsert: bool = False) -> tuple[str, list[Any]]:
        verb = "INSERT IGNORE" if ignore else "INSERT"
        table = self.quote_identifier(table_name)
        if not values:
            return f"{verb} INTO {table} () VALUES ()", []
        assignments = ", ".join(f"{self.quote_identifier(name)} = ?" for name in values)
        args = list(values.values())
        sql = f"{verb} INTO {table} SET {assignments}"
        if upsert:
            sql += f" ON DUPLICATE KEY UPDATE {assignments}"
            args += list(values.values())
        return sql, args

    def render_order_by_field(self, field: str, literals: list[str]) -> str:
        return f"FIELD({field}, {', '.join(literals)})"

    def render_truncate(self, table_name: str) -> list[str]:
        return [f"TRUNCATE TABLE {self.quote_identifier(table_name)}"]

    def table_exists_statement(self, table_name: str) -> tuple[str, list[Any]]:
        return (
            "SELECT TABLE_NAME FROM information_schema.TABLES"
            " WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = ?",
            [table_name],
        )
