"""Base class for records: pydantic models bound to the Model they were read from."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, PrivateAttr

from .errors import ConfigurationError
from .relation import BelongsToRelation

if TYPE_CHECKING:
    from .model import Model


class Record(BaseModel):
    """A row of a model.

    Columns that are not declared as fields are kept as extra attributes.
    Relation accessors of the model are reachable as attributes: a belongs-to
    accessor returns the related record, a has-many accessor returns a query.
    Assigning a record to a belongs-to accessor sets the local key.
    """

    model_config = ConfigDict(extra="allow")

    _model: Any = PrivateAttr(default=None)
    _persisted: bool = PrivateAttr(default=False)

    def bind(self, model: Model, persisted: bool = False) -> Record:
        self._model = model
        self._persisted = persisted
        return self

    @property
    def model(self) -> Model:
        if self._model is None:
            raise ConfigurationError(f"{type(self).__name__} is not bound to a model")
        return self._model

    @property
    def is_persisted(self) -> bool:
        return self._persisted

    def _bound_model(self) -> Optional[Model]:
        private = getattr(self, "__pydantic_private__", None)
        return private.get("_model") if private else None

    def __getattr__(self, name: str) -> Any:
        try:
            return super().__getattr__(name)
        except AttributeError:
            if name.startswith("_"):
                raise
            model = self._bound_model()
            relation = model.relations.get(name) if model is not None else None
            if relation is None:
                raise
        return relation(self)

    def __setattr__(self, name: str, value: Any) -> None:
        if not name.startswith("_"):
            model = self._bound_model()
            relation = model.relations.get(name) if model is not None else None
            if isinstance(relation, BelongsToRelation):
                relation.assign(self, value)
                return
        super().__setattr__(name, value)

    @property
    def key(self) -> Any:
        """Primary key value; a tuple for composite keys, None when unset."""
        columns = self.model.primary_columns
        values = tuple(getattr(self, column, None) for column in columns)
        if None in values:
            return None
        return values[0] if len(values) == 1 else values

    def to_values(self) -> dict[str, Any]:
        """The values of the columns of the model's whole table chain."""
        return self.model.extended_schema.filter_values(self.model_dump())

    def save(self) -> Any:
        """Update the row of a persisted record, or insert a new one.

        Returns:
            The primary key of the record.
        """
        model = self.model
        if self._persisted:
            return model.save(self.to_values(), key=self.key)
        key = model.save(self.to_values())
        primary = model.primary
        if isinstance(primary, str) and getattr(self, primary, None) is None:
            setattr(self, primary, key)
        self._persisted = True
        return self.key

    def delete(self) -> None:
        key = self.key
        if key is None:
            raise ValueError(f"Cannot delete a {type(self).__name__} without a primary key")
        self.model.delete(key)
        self._persisted = False


__all__ = ["Record"]
