"""Tables: a schema bound to a physical name, with multi-table inheritance.

A table may extend a parent table: every row of the child has a row with the
same primary key in each ancestor. Reads join the ancestors with
`INNER JOIN ... USING(primary)`, writes cascade through the chain.
"""

from __future__ import annotations

import logging
import re
from functools import cached_property
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from .connection import Connection
from .errors import ConfigurationError, ExecutionError, PartialWriteError
from .schema import Schema
from .statement import Statement
from .utils.make_alias import make_alias

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(self_and_related|self|alias|primary|prefix)\}")


class Table:
    """A table of a connection.

    Args:
        connection: Connection the table lives on.
        name: Unprefixed name; the physical name adds the connection's prefix.
        schema: Columns and indexes of this table only.
        alias: Alias used in statements; derived from the name when omitted.
        parent: Table this one extends, if any.
        implements: Tables always joined when reading, as `(table, loose)`
            pairs; loose tables are LEFT joined.
    """

    def __init__(
        self,
        connection: Connection,
        name: str,
        schema: Schema,
        alias: Optional[str] = None,
        parent: Optional[Table] = None,
        implements: Sequence[tuple[Table, bool]] = (),
    ):
        if not schema.columns:
            raise ConfigurationError(f"Table `{name}` has an empty schema")
        self.connection = connection
        self.unprefixed_name = name
        self.name = connection.table_name_prefix + name
        self.alias = alias or make_alias(name)
        self.schema = schema
        self.parent = parent
        self.implements = tuple(implements)
        ancestors = []
        table = parent
        while table is not None:
            ancestors.append(table)
            table = table.parent
        self.ancestors: tuple[Table, ...] = tuple(ancestors)
        """Parent first, root last."""
        if self.primary is None:
            raise ConfigurationError(f"Table `{name}` has no primary key")
        if parent is not None and self.primary != parent.primary:
            raise ConfigurationError(
                f"Table `{name}` must declare the primary key of its parent `{parent.unprefixed_name}`"
                f" ({parent.primary!r}), found: {self.primary!r}"
            )
        if parent is not None and not isinstance(self.primary, str):
            raise ConfigurationError(f"Table `{name}` cannot extend a table with a composite primary key")

    def __repr__(self):
        return f"<{type(self).__name__} {self.name!r} AS {self.alias!r}>"

    @property
    def dialect(self):
        return self.connection.dialect

    @property
    def primary(self) -> Union[None, str, tuple[str, ...]]:
        return self.schema.primary

    @property
    def primary_columns(self) -> tuple[str, ...]:
        primary = self.primary
        if primary is None:
            return ()
        return (primary,) if isinstance(primary, str) else primary

    @property
    def lineage(self) -> tuple[Table, ...]:
        """Root first, this table last."""
        return tuple(reversed(self.ancestors)) + (self,)

    def _q(self, name: str) -> str:
        return self.connection.quote_identifier(name)

    # join algebra

    @cached_property
    def extended_schema(self) -> Schema:
        """Columns of the whole chain, most-ancestral first, this table shadowing."""
        schema = Schema()
        for table in self.lineage:
            schema = schema.merge(table.schema)
        return schema

    def _using(self, table: Table) -> str:
        return f"USING({self.connection.dialect.quote_identifiers(table.primary_columns)})"

    @cached_property
    def update_join(self) -> str:
        """` INNER JOIN` of every ancestor, nearest first."""
        return "".join(
            f" INNER JOIN {self._q(ancestor.name)} {self._q(ancestor.alias)} {self._using(ancestor)}"
            for ancestor in self.ancestors
        )

    @cached_property
    def select_join(self) -> str:
        joins = self._q(self.alias) + self.update_join
        for table, loose in self.implements:
            mode = "LEFT" if loose else "INNER"
            joins += f" {mode} JOIN {self._q(table.name)} {self._q(table.alias)} {self._using(table)}"
        return joins

    def resolve_statement(self, sql: str) -> str:
        """Substitute `{self}`, `{alias}`, `{primary}`, `{self_and_related}` and `{prefix}`.

        Raises:
            ConfigurationError: If `{primary}` is used with a composite primary key.
        """
        def replace(match: re.Match) -> str:
            placeholder = match.group(1)
            if placeholder == "self":
                return self._q(self.name)
            if placeholder == "alias":
                return self._q(self.alias)
            if placeholder == "prefix":
                return self.connection.table_name_prefix
            if placeholder == "self_and_related":
                return f"{self._q(self.name)} {self.select_join}"
            if isinstance(self.primary, tuple):
                raise ConfigurationError(
                    f"`{{primary}}` cannot stand for the composite primary key of `{self.name}`"
                    f" ({', '.join(self.primary)}); use its columns explicitly"
                )
            return self._q(self.primary)

        return _PLACEHOLDER.sub(replace, sql)

    # statements

    def prepare(self, sql: str) -> Statement:
        return self.connection.prepare(self.resolve_statement(sql))

    def execute(self, sql: str, args: Iterable[Any] = ()) -> Statement:
        return self.prepare(sql).execute(args)

    def __call__(self, sql: str, args: Iterable[Any] = ()) -> Statement:
        return self.execute(sql, args)

    # values

    def filter_values(self, values: Mapping[str, Any], schema: Optional[Schema] = None) -> dict[str, Any]:
        """Keep the values of known columns, cast for the driver."""
        schema = schema or self.schema
        return {
            name: self.connection.cast_value(value)
            for name, value in schema.filter_values(values).items()
        }

    def key_condition(self, key: Any, alias: Optional[str] = None) -> tuple[str, list[Any]]:
        """Return `col = ?` conditions (joined with AND) matching a primary key value.

        Composite keys are given as a sequence in primary key order or as a mapping.
        """
        columns = self.primary_columns
        if len(columns) == 1:
            values = [key]
        elif isinstance(key, Mapping):
            try:
                values = [key[column] for column in columns]
            except KeyError as error:
                raise ValueError(f"Missing primary key column {error} for `{self.name}`") from error
        elif isinstance(key, (list, tuple)) and len(key) == len(columns):
            values = list(key)
        else:
            raise ValueError(
                f"`{self.name}` has a composite primary key ({', '.join(columns)}), given: {key!r}"
            )
        prefix = f"{self._q(alias)}." if alias else ""
        sql = " AND ".join(f"{prefix}{self._q(column)} = ?" for column in columns)
        return sql, [self.connection.cast_value(value) for value in values]

    # write path

    def insert(self, values: Mapping[str, Any], ignore: bool = False, upsert: bool = False) -> Any:
        """Insert a row in this table only and return the last insert id."""
        sql, args = self.dialect.render_insert(self.name, self.filter_values(values), ignore=ignore, upsert=upsert)
        return self.connection.execute(sql, args).lastrowid

    def save(self, values: Mapping[str, Any], key: Any = None) -> Any:
        """Update the row identified by `key`, or insert a new one through the whole chain.

        Returns:
            The primary key of the row.

        Raises:
            PartialWriteError: If a table failed after an earlier table of the chain was written.
        """
        if key is not None:
            self.update(values, key)
            return key
        return self._insert_chain(dict(values), written=[])

    def _insert_chain(self, values: dict[str, Any], written: list[str]) -> Any:
        if self.parent is not None:
            parent_key = self.parent._insert_chain(values, written)
            values[self.primary] = parent_key
        filtered = self.filter_values(values)
        sql, args = self.dialect.render_insert(self.name, filtered)
        try:
            statement = self.connection.execute(sql, args)
        except ExecutionError as error:
            if written:
                raise PartialWriteError(self.name, written, values.get(self.primary)) from error
            raise
        written.append(self.name)
        key = filtered.get(self.primary) if isinstance(self.primary, str) else None
        if key is None:
            key = statement.lastrowid
        logger.debug("Inserted %s into `%s`", key, self.name)
        return key

    def update(self, values: Mapping[str, Any], key: Any) -> None:
        """Update the row identified by `key`, in every table of the chain that has values."""
        if self.ancestors and self.dialect.supports_update_join:
            self._update_joined(values, key)
            return
        written = []
        for table in self.lineage:
            filtered = table.filter_values(values)
            for column in table.primary_columns:
                filtered.pop(column, None)
            if not filtered:
                continue
            condition, key_args = table.key_condition(key)
            assignments = ", ".join(f"{self._q(column)} = ?" for column in filtered)
            sql = f"UPDATE {self._q(table.name)} SET {assignments} WHERE {condition}"
            try:
                self.connection.execute(sql, list(filtered.values()) + key_args)
            except ExecutionError as error:
                if written:
                    raise PartialWriteError(table.name, written, key) from error
                raise
            written.append(table.name)

    def _update_joined(self, values: Mapping[str, Any], key: Any) -> None:
        assignments = []
        args = []
        assigned = set()
        for table in (self,) + self.ancestors:
            for column, value in table.filter_values(values).items():
                if column in assigned or column in table.primary_columns:
                    continue
                assigned.add(column)
                assignments.append(f"{self._q(table.alias)}.{self._q(column)} = ?")
                args.append(value)
        if not assignments:
            return
        condition, key_args = self.key_condition(key, alias=self.alias)
        sql = (
            f"UPDATE {self._q(self.name)} {self._q(self.alias)}{self.update_join}"
            f" SET {', '.join(assignments)} WHERE {condition}"
        )
        self.connection.execute(sql, args + key_args)

    def delete(self, key: Any) -> None:
        """Delete the row identified by `key` from this table, then from each ancestor."""
        written = []
        for table in (self,) + self.ancestors:
            condition, args = table.key_condition(key)
            try:
                self.connection.execute(f"DELETE FROM {self._q(table.name)} WHERE {condition}", args)
            except ExecutionError as error:
                if written:
                    raise PartialWriteError(table.name, written, key) from error
                raise
            written.append(table.name)

    def truncate(self) -> None:
        for sql in self.dialect.render_truncate(self.name):
            self.connection.execute(sql)

    def drop(self, if_exists: bool = False) -> None:
        self.connection.execute(self.dialect.render_drop_table(self.name, if_exists=if_exists))

    # lifecycle

    def install(self) -> None:
        """Create this table (not its ancestors)."""
        self.connection.create_table(self.name, self.schema)

    def uninstall(self) -> None:
        self.drop(if_exists=True)

    def is_installed(self) -> bool:
        return self.connection.table_exists(self.name)


__all__ = ["Table"]
