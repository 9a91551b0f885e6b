"""Column metadata for schemas.

A Column is an immutable, dialect-neutral description of one table column.
Dialects turn it into SQL (see relmap.dialects); the helper constructors at
the bottom of this module encode the usual defaults (e.g. `serial()` is a
big, unsigned, auto-incremented primary key).
"""

from __future__ import annotations

import dataclasses
import enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator

from .errors import ConfigurationError


class ColumnKind(str, enum.Enum):
    BOOLEAN = "boolean"
    INTEGER = "integer"
    DECIMAL = "decimal"
    CHARACTER = "character"
    BINARY = "binary"
    TEXT = "text"
    BLOB = "blob"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    TIMESTAMP = "timestamp"
    SERIAL = "serial"
    FOREIGN = "foreign"


# integer sizes, in bytes
TINY = 1
SMALL = 2
MEDIUM = 3
REGULAR = 4
BIG = 8
INTEGER_SIZES = (TINY, SMALL, MEDIUM, REGULAR, BIG)

# text and blob size classes; None is the regular size
SIZE_CLASSES = ("TINY", "MEDIUM", "LONG")

# default sentinels
CURRENT_TIMESTAMP = "CURRENT_TIMESTAMP"
CURRENT_DATE = "CURRENT_DATE"
CURRENT_TIME = "CURRENT_TIME"
NOW = "NOW"
CURRENT_TIME_DEFAULTS = (CURRENT_TIMESTAMP, CURRENT_DATE, CURRENT_TIME)

_INTEGER_KINDS = (ColumnKind.INTEGER, ColumnKind.SERIAL, ColumnKind.FOREIGN)


class Column(BaseModel):
    """Metadata for a single table column: kind, size and constraints."""

    model_config = ConfigDict(frozen=True)

    kind: ColumnKind
    size: Optional[Union[int, str]] = None
    """Bytes for integers, characters for character/binary, size class for text/blob."""
    unsigned: bool = False
    fixed: bool = False
    """CHAR/BINARY instead of VARCHAR/VARBINARY."""
    precision: Optional[int] = None
    scale: Optional[int] = None
    approximate: bool = False
    """FLOAT(precision) instead of DECIMAL(precision, scale)."""
    null: bool = False
    unique: bool = False
    primary: bool = False
    default: Optional[Union[str, int, float]] = None
    auto_increment: bool = False
    collate: Optional[str] = None
    comment: Optional[str] = None

    @model_validator(mode="after")
    def _check_constraints(self) -> Column:
        kind = self.kind
        if kind in _INTEGER_KINDS and self.size not in INTEGER_SIZES:
            raise ConfigurationError(
                f"Integer size must be one of {INTEGER_SIZES}, given: {self.size!r}"
            )
        if kind in (ColumnKind.TEXT, ColumnKind.BLOB) and self.size is not None \
                and self.size not in SIZE_CLASSES:
            raise ConfigurationError(
                f"{kind.value} size must be None or one of {SIZE_CLASSES}, given: {self.size!r}"
            )
        if kind in (ColumnKind.CHARACTER, ColumnKind.BINARY):
            if not isinstance(self.size, int) or self.size < 1:
                raise ConfigurationError(f"{kind.value} size must be a positive integer, given: {self.size!r}")
            if self.fixed and self.size > 255:
                raise ConfigurationError(
                    f"For fixed {kind.value}, the size must be at most 255, given: {self.size}"
                )
        if kind is ColumnKind.SERIAL:
            if self.size < SMALL:
                raise ConfigurationError("A serial integer must be at least 2 bytes")
            if not self.unsigned:
                raise ConfigurationError("A serial integer must be unsigned")
            if self.null:
                raise ConfigurationError("A serial integer cannot be nullable")
            if not (self.unique or self.primary):
                raise ConfigurationError("A serial integer must be unique or primary")
            if not self.auto_increment:
                raise ConfigurationError("A serial integer must be auto-incremented")
        elif self.auto_increment:
            raise ConfigurationError(f"Only serial columns can be auto-incremented, not {kind.value}")
        if self.primary and self.null:
            raise ConfigurationError("A primary key column cannot be nullable")
        return self

    @property
    def is_integer(self) -> bool:
        return self.kind in _INTEGER_KINDS or self.kind is ColumnKind.BOOLEAN


@dataclasses.dataclass(frozen=True)
class ColumnAttribute:
    """Marks a record field as a column: `id: Annotated[int, ColumnAttribute(serial())]`."""

    column: Column


def _default(value):
    if value == NOW:
        return CURRENT_TIMESTAMP
    return value


def boolean(null: bool = False, unique: bool = False, default: Optional[bool] = None) -> Column:
    return Column(
        kind=ColumnKind.BOOLEAN,
        null=null,
        unique=unique,
        default=None if default is None else int(default),
    )


def integer(size: int = REGULAR, unsigned: bool = False, null: bool = False, unique: bool = False,
            primary: bool = False, default: Optional[int] = None) -> Column:
    return Column(
        kind=ColumnKind.INTEGER,
        size=size,
        unsigned=unsigned,
        null=null,
        unique=unique,
        primary=primary,
        default=default,
    )


def decimal(precision: Optional[int] = None, scale: int = 0, approximate: bool = False,
            unsigned: bool = False, null: bool = False, default: Optional[float] = None) -> Column:
    return Column(
        kind=ColumnKind.DECIMAL,
        precision=precision,
        scale=scale,
        approximate=approximate,
        unsigned=unsigned,
        null=null,
        default=default,
    )


def char(size: int = 255, null: bool = False, unique: bool = False, primary: bool = False,
         default: Optional[str] = None, collate: Optional[str] = None, comment: Optional[str] = None) -> Column:
    return Column(
        kind=ColumnKind.CHARACTER,
        size=size,
        fixed=True,
        null=null,
        unique=unique,
        primary=primary,
        default=default,
        collate=collate,
        comment=comment,
    )


def varchar(size: int = 255, null: bool = False, unique: bool = False, primary: bool = False,
            default: Optional[str] = None, collate: Optional[str] = None, comment: Optional[str] = None) -> Column:
    return Column(
        kind=ColumnKind.CHARACTER,
        size=size,
        null=null,
        unique=unique,
        primary=primary,
        default=default,
        collate=collate,
        comment=comment,
    )


def binary(size: int = 255, null: bool = False, unique: bool = False, primary: bool = False) -> Column:
    return Column(kind=ColumnKind.BINARY, size=size, fixed=True, null=null, unique=unique, primary=primary)


def varbinary(size: int = 255, null: bool = False, unique: bool = False, primary: bool = False) -> Column:
    return Column(kind=ColumnKind.BINARY, size=size, null=null, unique=unique, primary=primary)


def text(size: Optional[str] = None, null: bool = False, unique: bool = False,
         default: Optional[str] = None, collate: Optional[str] = None, comment: Optional[str] = None) -> Column:
    return Column(
        kind=ColumnKind.TEXT,
        size=size,
        null=null,
        unique=unique,
        default=default,
        collate=collate,
        comment=comment,
    )


def blob(size: Optional[str] = None, null: bool = False, unique: bool = False) -> Column:
    return Column(kind=ColumnKind.BLOB, size=size, null=null, unique=unique)


def date(null: bool = False, default: Optional[str] = None) -> Column:
    return Column(kind=ColumnKind.DATE, null=null, default=_default(default))


def time(null: bool = False, default: Optional[str] = None) -> Column:
    return Column(kind=ColumnKind.TIME, null=null, default=_default(default))


def datetime(null: bool = False, default: Optional[str] = None) -> Column:
    return Column(kind=ColumnKind.DATETIME, null=null, default=_default(default))


def timestamp(null: bool = False, default: Optional[str] = None) -> Column:
    return Column(kind=ColumnKind.TIMESTAMP, null=null, default=_default(default))


def serial(size: int = BIG, primary: bool = True) -> Column:
    """Auto-incremented unsigned integer; unique instead of primary when `primary` is False."""
    return Column(
        kind=ColumnKind.SERIAL,
        size=size,
        unsigned=True,
        primary=primary,
        unique=not primary,
        auto_increment=True,
    )


def foreign(size: int = BIG, null: bool = False, unique: bool = False, primary: bool = False) -> Column:
    """Unsigned integer referencing a serial column."""
    return Column(
        kind=ColumnKind.FOREIGN,
        size=size,
        unsigned=True,
        null=null,
        unique=unique,
        primary=primary,
    )


__all__ = [
    "Column",
    "ColumnKind",
    "ColumnAttribute",
    "TINY",
    "SMALL",
    "MEDIUM",
    "REGULAR",
    "BIG",
    "CURRENT_TIMESTAMP",
    "CURRENT_DATE",
    "CURRENT_TIME",
    "NOW",
    "boolean",
    "integer",
    "decimal",
    "char",
    "varchar",
    "binary",
    "varbinary",
    "text",
    "blob",
    "date",
    "time",
    "datetime",
    "timestamp",
    "serial",
    "foreign",
]
