"""Prepared statements and result fetching.

A Statement wraps a DB-API cursor. It is obtained from Connection.prepare(),
executed with a positional argument vector, then read with one of the fetch
helpers (all, one, rc, pairs, column).
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, Iterator, Optional

from .errors import StatementNotValid

if TYPE_CHECKING:
    from .connection import Connection

logger = logging.getLogger(__name__)


class FetchMode(str, enum.Enum):
    RECORD = "record"
    """Rows are turned into records by a factory."""
    ASSOC = "assoc"
    """Rows are dicts keyed by column name."""
    NUM = "num"
    """Rows are tuples."""
    COLUMN = "column"
    """Only the first column of each row."""
    KEY_PAIR = "key_pair"
    """First column maps to second column."""


class Statement:
    """A statement prepared on a connection."""

    def __init__(self, connection: Connection, sql: str, native_sql: str, cursor: Any):
        self.connection = connection
        self.sql = sql
        """Statement as written, with `?` placeholders."""
        self.native_sql = native_sql
        """Statement in the driver's parameter style."""
        self.cursor = cursor
        self.args: Optional[list[Any]] = None

    def __repr__(self):
        return f"<Statement {self.sql!r}>"

    def __str__(self):
        return self.sql

    def execute(self, args: Iterable[Any] = ()) -> Statement:
        """Execute the statement with a positional argument vector.

        Raises:
            StatementNotValid: If the driver rejects the statement or its arguments.
        """
        args = list(args)
        self.args = args
        logger.debug("%s %r", self.sql, args)
        error_class = getattr(self.connection.raw, "Error", Exception)
        try:
            self.cursor.execute(self.native_sql, tuple(args))
        except error_class as error:
            raise StatementNotValid(self.sql, args, error) from error
        return self

    def __call__(self, *args: Any) -> Statement:
        return self.execute(args)

    @property
    def columns(self) -> list[str]:
        return [description[0] for description in self.cursor.description or ()]

    @property
    def lastrowid(self) -> Any:
        return self.cursor.lastrowid

    @property
    def rowcount(self) -> int:
        return self.cursor.rowcount

    def _rows(self) -> list[tuple]:
        if self.cursor.description is None:
            return []
        return [tuple(row) for row in self.cursor.fetchall()]

    def all(self, mode: FetchMode = FetchMode.ASSOC,
            factory: Optional[Callable[[dict[str, Any]], Any]] = None) -> list[Any]:
        """Fetch every remaining row in the given mode.

        Args:
            mode: How rows are returned; RECORD requires `factory`.
            factory: Turns an ASSOC row into a record.

        Returns:
            List of rows; a dict for KEY_PAIR.
        """
        rows = self._rows()
        if mode is FetchMode.NUM:
            return rows
        if mode is FetchMode.COLUMN:
            return [row[0] for row in rows]
        if mode is FetchMode.KEY_PAIR:
            return dict((row[0], row[1]) for row in rows)
        names = self.columns
        assoc = [dict(zip(names, row)) for row in rows]
        if mode is FetchMode.RECORD:
            if factory is None:
                raise ValueError("Fetching records requires a record factory")
            return [factory(row) for row in assoc]
        return assoc

    def one(self, mode: FetchMode = FetchMode.ASSOC,
            factory: Optional[Callable[[dict[str, Any]], Any]] = None) -> Any:
        """Return the first row in the given mode, or None."""
        rows = self.all(mode, factory)
        if mode is FetchMode.KEY_PAIR:
            return next(iter(rows.items()), None)
        return rows[0] if rows else None

    @property
    def rc(self) -> Any:
        """The first column of the first row, or None."""
        return self.one(FetchMode.COLUMN)

    def pairs(self) -> dict[Any, Any]:
        return self.all(FetchMode.KEY_PAIR)

    def column(self) -> list[Any]:
        return self.all(FetchMode.COLUMN)

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(self.all(FetchMode.ASSOC))


__all__ = ["FetchMode", "Statement"]
