"""Fluent construction of Schema instances."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

from . import column as col
from .column import Column, ColumnAttribute
from .errors import ConfigurationError
from .schema import Index, Schema

logger = logging.getLogger(__name__)


class SchemaBuilder:
    """Accumulate column and index declarations, then `build()` a Schema.

    Every `add_*` method returns the builder so that calls can be chained:

        schema = (
            SchemaBuilder()
            .add_serial("id")
            .add_varchar("name", unique=True)
            .add_index("name")
            .build()
        )
    """

    TINY = "TINY"
    MEDIUM = "MEDIUM"
    LONG = "LONG"

    NOW = col.NOW
    CURRENT_TIMESTAMP = col.CURRENT_TIMESTAMP

    def __init__(self):
        self._columns: dict[str, Column] = {}
        self._indexes: list[Index] = []

    def add_column(self, name: str, column: Column) -> SchemaBuilder:
        if name in self._columns:
            logger.debug("Column `%s` redefined", name)
        self._columns[name] = column
        return self

    def add_boolean(self, name: str, null: bool = False, unique: bool = False,
                    default: Optional[bool] = None) -> SchemaBuilder:
        return self.add_column(name, col.boolean(null=null, unique=unique, default=default))

    def add_integer(self, name: str, size: int = col.REGULAR, unsigned: bool = False,
                    null: bool = False, unique: bool = False, primary: bool = False,
                    default: Optional[int] = None) -> SchemaBuilder:
        return self.add_column(name, col.integer(
            size=size, unsigned=unsigned, null=null, unique=unique, primary=primary, default=default,
        ))

    def add_decimal(self, name: str, precision: Optional[int] = None, scale: int = 0,
                    approximate: bool = False, unsigned: bool = False, null: bool = False,
                    default: Optional[float] = None) -> SchemaBuilder:
        return self.add_column(name, col.decimal(
            precision=precision, scale=scale, approximate=approximate,
            unsigned=unsigned, null=null, default=default,
        ))

    def add_serial(self, name: str, primary: bool = True, size: int = col.BIG) -> SchemaBuilder:
        return self.add_column(name, col.serial(size=size, primary=primary))

    def add_foreign(self, name: str, null: bool = False, unique: bool = False,
                    primary: bool = False, size: int = col.BIG) -> SchemaBuilder:
        return self.add_column(name, col.foreign(size=size, null=null, unique=unique, primary=primary))

    def add_date(self, name: str, null: bool = False, default: Optional[str] = None) -> SchemaBuilder:
        return self.add_column(name, col.date(null=null, default=default))

    def add_time(self, name: str, null: bool = False, default: Optional[str] = None) -> SchemaBuilder:
        return self.add_column(name, col.time(null=null, default=default))

    def add_datetime(self, name: str, null: bool = False, default: Optional[str] = None) -> SchemaBuilder:
        return self.add_column(name, col.datetime(null=null, default=default))

    def add_timestamp(self, name: str, null: bool = False, default: Optional[str] = None) -> SchemaBuilder:
        return self.add_column(name, col.timestamp(null=null, default=default))

    def add_char(self, name: str, size: int = 255, null: bool = False, unique: bool = False,
                 primary: bool = False, default: Optional[str] = None,
                 collate: Optional[str] = None, comment: Optional[str] = None) -> SchemaBuilder:
        return self.add_column(name, col.char(
            size=size, null=null, unique=unique, primary=primary,
            default=default, collate=collate, comment=comment,
        ))

    def add_varchar(self, name: str, size: int = 255, null: bool = False, unique: bool = False,
                    primary: bool = False, default: Optional[str] = None,
                    collate: Optional[str] = None, comment: Optional[str] = None) -> SchemaBuilder:
        return self.add_column(name, col.varchar(
            size=size, null=null, unique=unique, primary=primary,
            default=default, collate=collate, comment=comment,
        ))

    def add_binary(self, name: str, size: int = 255, null: bool = False, unique: bool = False,
                   primary: bool = False) -> SchemaBuilder:
        return self.add_column(name, col.binary(size=size, null=null, unique=unique, primary=primary))

    def add_varbinary(self, name: str, size: int = 255, null: bool = False, unique: bool = False,
                      primary: bool = False) -> SchemaBuilder:
        return self.add_column(name, col.varbinary(size=size, null=null, unique=unique, primary=primary))

    def add_text(self, name: str, size: Optional[str] = None, null: bool = False, unique: bool = False,
                 default: Optional[str] = None, collate: Optional[str] = None,
                 comment: Optional[str] = None) -> SchemaBuilder:
        return self.add_column(name, col.text(
            size=size, null=null, unique=unique, default=default, collate=collate, comment=comment,
        ))

    def add_blob(self, name: str, size: Optional[str] = None, null: bool = False,
                 unique: bool = False) -> SchemaBuilder:
        return self.add_column(name, col.blob(size=size, null=null, unique=unique))

    def add_index(self, columns: Union[str, Iterable[str]], unique: bool = False,
                  name: Optional[str] = None) -> SchemaBuilder:
        """Declare an index; every column must have been added beforehand.

        Raises:
            ConfigurationError: If a column has not been declared.
        """
        index = Index(columns=columns, unique=unique, name=name)
        for column_name in index.columns:
            if column_name not in self._columns:
                raise ConfigurationError(
                    f"Cannot index `{column_name}`: the column has not been declared"
                )
        self._indexes.append(index)
        return self

    def build(self) -> Schema:
        """Return a Schema snapshot of the current declarations."""
        return Schema(columns=dict(self._columns), indexes=tuple(self._indexes))

    @classmethod
    def from_record(cls, record_class: type) -> SchemaBuilder:
        """Return a builder pre-filled from the annotations of a pydantic record class.

        Fields annotated with `Annotated[..., ColumnAttribute(column)]` become
        columns, in declaration order. Indexes are read from the optional
        `__indexes__` class variable, a sequence of Index instances.
        """
        builder = cls()
        for name, field in record_class.model_fields.items():
            for metadata in field.metadata:
                if isinstance(metadata, ColumnAttribute):
                    builder.add_column(name, metadata.column)
                    break
        for index in getattr(record_class, "__indexes__", ()):
            builder.add_index(index.columns, unique=index.unique, name=index.name)
        return builder


__all__ = ["SchemaBuilder"]
