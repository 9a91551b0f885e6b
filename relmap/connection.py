"""Database connections and the named connection registry.

Connections are configured by name with a database URL (or a callable
returning one); the driver connection is only opened on first use.
"""

from __future__ import annotations

import logging
import urllib.parse
from functools import cached_property
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from .dialects import Dialect, get_dialect_for_scheme
from .errors import ConnectionNotDefined, StatementNotPrepared
from .schema import Schema
from .statement import Statement

logger = logging.getLogger(__name__)

DatabaseUrl = Union[str, Callable[[], str]]


class ConnectionDefinition(BaseModel):
    """Name, URL and table name prefix of a connection."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = "default"
    url: Any
    """A URL string, or a callable returning one."""
    table_name_prefix: str = ""


class Connection:
    """A database connection bound to the dialect matching its URL scheme."""

    def __init__(self, url: DatabaseUrl, table_name_prefix: str = "", id: str = "default"):
        if not isinstance(url, str) and not callable(url):
            raise ValueError(f"`database_url` should be a str, or a method returning a str; got {url!r}")
        self.id = id
        self._url = url
        self.table_name_prefix = table_name_prefix

    def __repr__(self):
        return f"<Connection {self.id!r} {self.dialect.NAME}>"

    @cached_property
    def url(self) -> str:
        return self._url() if callable(self._url) else self._url

    @cached_property
    def dialect(self) -> Dialect:
        return get_dialect_for_scheme(urllib.parse.urlparse(self.url).scheme)

    @cached_property
    def raw(self) -> Any:
        """The driver connection, opened on first access."""
        logger.info("Opening connection `%s`", self.id)
        return self.dialect.connect(self.url)

    @property
    def is_established(self) -> bool:
        return "raw" in self.__dict__

    def close(self) -> None:
        if self.is_established:
            self.__dict__.pop("raw").close()

    # statements

    def prepare(self, sql: str) -> Statement:
        """Prepare a statement written with `?` placeholders.

        Raises:
            StatementNotPrepared: If the statement is empty or the driver cannot provide a cursor.
        """
        if not sql or not sql.strip():
            raise StatementNotPrepared(sql, ValueError("empty statement"))
        native_sql = self.dialect.translate_placeholders(sql)
        raw = self.raw
        try:
            cursor = raw.cursor()
        except getattr(raw, "Error", Exception) as error:
            raise StatementNotPrepared(sql, error) from error
        return Statement(self, sql, native_sql, cursor)

    def execute(self, sql: str, args: Iterable[Any] = ()) -> Statement:
        return self.prepare(sql).execute(args)

    def __call__(self, sql: str, args: Iterable[Any] = ()) -> Statement:
        return self.execute(sql, args)

    # dialect shortcuts

    def quote_identifier(self, name: str) -> str:
        return self.dialect.quote_identifier(name)

    def quote_literal(self, value: Any) -> str:
        return self.dialect.quote_literal(value)

    def cast_value(self, value: Any) -> Any:
        return self.dialect.cast_value(value)

    # schema

    def table_exists(self, table_name: str) -> bool:
        """Whether a table with this physical name exists."""
        sql, args = self.dialect.table_exists_statement(table_name)
        return self.execute(sql, args).rc is not None

    def create_table(self, table_name: str, schema: Schema) -> None:
        """Create a table and its separate indexes."""
        logger.info("CREATE TABLE %s", table_name)
        self.execute(self.dialect.render_create_table(table_name, schema))
        for sql in self.dialect.render_create_indexes(table_name, schema):
            self.execute(sql)


class ConnectionCollection:
    """Named connections, established lazily on first lookup."""

    def __init__(self, definitions: Optional[Mapping[str, ConnectionDefinition]] = None):
        self._definitions: dict[str, ConnectionDefinition] = dict(definitions or {})
        self._established: dict[str, Connection] = {}

    def connect(self, database_url: DatabaseUrl, name: str = "default", table_name_prefix: str = "") -> None:
        """Register (or replace) the connection called `name`."""
        if not isinstance(database_url, str) and not callable(database_url):
            raise ValueError(
                f"`database_url` should be a str, or a method returning a str; got {database_url!r}"
            )
        self.close(name)
        self._definitions[name] = ConnectionDefinition(
            id=name, url=database_url, table_name_prefix=table_name_prefix,
        )

    def __getitem__(self, name: str) -> Connection:
        try:
            return self._established[name]
        except KeyError:
            pass
        try:
            definition = self._definitions[name]
        except KeyError as error:
            raise ConnectionNotDefined(name) from error
        connection = Connection(definition.url, table_name_prefix=definition.table_name_prefix, id=name)
        self._established[name] = connection
        return connection

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    @property
    def definitions(self) -> dict[str, ConnectionDefinition]:
        return dict(self._definitions)

    @property
    def established(self) -> dict[str, Connection]:
        return dict(self._established)

    def close(self, name: Optional[str] = None) -> None:
        """Close one connection, or all of them."""
        names = [name] if name is not None else list(self._established)
        for connection_name in names:
            connection = self._established.pop(connection_name, None)
            if connection is not None:
                connection.close()


__all__ = [
    "ConnectionDefinition",
    "Connection",
    "ConnectionCollection",
]
