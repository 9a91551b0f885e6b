"""Immutable table schemas: columns, indexes and the derived primary key."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .column import Column
from .errors import ConfigurationError


class Index(BaseModel):
    """An index over one or more columns."""

    model_config = ConfigDict(frozen=True)

    columns: tuple[str, ...]
    unique: bool = False
    name: Optional[str] = None

    @field_validator("columns", mode="before")
    @classmethod
    def _coerce_columns(cls, value):
        if isinstance(value, str):
            return (value,)
        return tuple(value)

    @property
    def default_name(self) -> str:
        return self.name or "_".join(self.columns)


class Schema(BaseModel):
    """Ordered mapping of column names to columns, plus indexes.

    The primary key is derived from the columns flagged `primary`: None, a
    single column name, or a tuple of names for composite keys.
    """

    model_config = ConfigDict(frozen=True)

    columns: dict[str, Column] = {}
    indexes: tuple[Index, ...] = ()

    @model_validator(mode="after")
    def _check_indexes(self) -> Schema:
        for index in self.indexes:
            for name in index.columns:
                if name not in self.columns:
                    raise ConfigurationError(
                        f"Index `{index.default_name}` references undeclared column `{name}`"
                    )
        return self

    @property
    def primary(self) -> Union[None, str, tuple[str, ...]]:
        primary = tuple(name for name, column in self.columns.items() if column.primary)
        if not primary:
            return None
        if len(primary) == 1:
            return primary[0]
        return primary

    @property
    def primary_columns(self) -> tuple[str, ...]:
        """The primary key as a tuple, whatever its arity."""
        return tuple(name for name, column in self.columns.items() if column.primary)

    @property
    def column_names(self) -> list[str]:
        return list(self.columns)

    def __getitem__(self, name: str) -> Column:
        return self.columns[name]

    def __contains__(self, name: object) -> bool:
        return name in self.columns

    def __len__(self) -> int:
        return len(self.columns)

    def get(self, name: str, default: Optional[Column] = None) -> Optional[Column]:
        return self.columns.get(name, default)

    def items(self) -> Iterable[tuple[str, Column]]:
        return self.columns.items()

    def filter_values(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Keep only the entries whose key is a column of this schema."""
        return {name: value for name, value in values.items() if name in self.columns}

    def merge(self, other: Schema) -> Schema:
        """Return a schema with the columns of `other` shadowing these ones."""
        return Schema(
            columns={**self.columns, **other.columns},
            indexes=self.indexes + other.indexes,
        )


__all__ = ["Index", "Schema"]
