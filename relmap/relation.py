"""Relations between models: belongs-to, has-many and has-many-through.

Relations are registered per model under an accessor name. Calling a relation
with a record of its owner returns the related record (belongs-to) or a query
over the related records (has-many).
"""

from __future__ import annotations

import abc
from functools import cached_property
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigurationError, RelationIntegrityError, RelationNotDefined
from .statement import FetchMode

if TYPE_CHECKING:
    from .model import Model
    from .query import Query


class Relation(BaseModel, abc.ABC):
    """Link from an owner model to a related model, resolved lazily by id."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    owner: Any = Field(exclude=True, repr=False)
    related: str
    """Id of the related model."""
    local_key: str
    foreign_key: str
    accessor: str

    @cached_property
    def related_model(self) -> Model:
        return self.owner.models[self.related]

    @abc.abstractmethod
    def __call__(self, record: Any) -> Any:
        ...  # pylint: disable=unnecessary-ellipsis


class BelongsToRelation(Relation):
    """The owner row holds `local_key`, matching `foreign_key` of one related row."""

    def __call__(self, record: Any) -> Any:
        key = getattr(record, self.local_key, None)
        if key is None or key == "":
            column = self.owner.extended_schema.get(self.local_key)
            if column is not None and column.null:
                return None
            raise RelationIntegrityError(
                f"Cannot resolve `{self.owner.id}.{self.accessor}`: `{self.local_key}` is empty"
            )
        related = self.related_model
        if related.primary == self.foreign_key:
            return related.find(key)
        return related.where({self.foreign_key: key}).one()

    def assign(self, record: Any, related: Any) -> None:
        """Point `record` at `related`, or at nothing when `related` is None."""
        value = None if related is None else getattr(related, self.foreign_key)
        setattr(record, self.local_key, value)


class HasManyRelation(Relation):
    """Related rows hold `foreign_key` matching the owner's `local_key`.

    With `through`, the related rows are reached via a pivot model holding a
    belongs-to relation to each side.
    """

    through: Optional[str] = None

    def __call__(self, record: Any) -> Query:
        key = getattr(record, self.local_key, None)
        if self.through is None:
            if key is None or key == "":
                # an unsaved owner has no related rows, not those with a NULL foreign key
                return self.related_model.where("1 = 0")
            return self.related_model.where({self.foreign_key: key})
        return self.through_query(key)

    def through_query(self, key: Any) -> Query:
        owner = self.owner
        related = self.related_model
        if not isinstance(owner.primary, str):
            raise ConfigurationError(
                f"`{owner.id}.{self.accessor}` cannot go through `{self.through}` with a composite primary key"
            )
        pivot = owner.models[self.through]
        to_owner = pivot.relations.belongs_to_target(owner.id)
        to_related = pivot.relations.belongs_to_target(related.id)
        q = owner.connection.quote_identifier
        return (
            related.query()
            .select(f"{q(related.alias)}.*")
            .mode(FetchMode.RECORD)
            .join(
                f"INNER JOIN {q(pivot.name)} ON {q(pivot.name)}.{q(to_related.local_key)}"
                f" = {q(related.alias)}.{q(to_related.foreign_key)}"
            )
            .join(
                f"INNER JOIN {q(owner.name)} {q(owner.alias)} ON {q(pivot.name)}.{q(to_owner.local_key)}"
                f" = {q(owner.alias)}.{q(to_owner.foreign_key)}"
            )
            .where(f"{q(owner.alias)}.{q(owner.primary)} = ?", key)
        )


class RelationCollection:
    """Relations of one model, keyed by accessor."""

    def __init__(self, owner: Model):
        self.owner = owner
        self._relations: dict[str, Relation] = {}

    def __repr__(self):
        return f"<RelationCollection {self.owner.id}: {', '.join(self._relations)}>"

    def register(self, relation: Relation) -> Relation:
        if relation.accessor in self._relations:
            raise ConfigurationError(
                f"Relation `{relation.accessor}` is already defined on model `{self.owner.id}`"
            )
        self._relations[relation.accessor] = relation
        return relation

    def belongs_to(self, related: str, local_key: str, foreign_key: str, accessor: str) -> BelongsToRelation:
        return self.register(BelongsToRelation(
            owner=self.owner, related=related, local_key=local_key,
            foreign_key=foreign_key, accessor=accessor,
        ))

    def has_many(self, related: str, local_key: str, foreign_key: str, accessor: str,
                 through: Optional[str] = None) -> HasManyRelation:
        return self.register(HasManyRelation(
            owner=self.owner, related=related, local_key=local_key,
            foreign_key=foreign_key, accessor=accessor, through=through,
        ))

    def apply(self, association: Any) -> Relation:
        """Register the relation described by a resolved association definition."""
        if association.kind == "belongs_to":
            return self.belongs_to(
                association.associate, association.local_key, association.foreign_key, association.accessor,
            )
        if association.kind == "has_many":
            return self.has_many(
                association.associate, association.local_key, association.foreign_key, association.accessor,
                through=association.through,
            )
        raise ValueError(f"Unknown association kind: {association.kind!r}")

    def get(self, name: str, default: Optional[Relation] = None) -> Optional[Relation]:
        """Look a relation up on this model, then on its ancestors."""
        model = self.owner
        while model is not None:
            relation = model.relations._relations.get(name)
            if relation is not None:
                return relation
            model = model.parent_model
        return default

    def __getitem__(self, name: str) -> Relation:
        relation = self.get(name)
        if relation is None:
            raise RelationNotDefined(name, self.owner.id)
        return relation

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __iter__(self) -> Iterator[Relation]:
        return iter(list(self._relations.values()))

    def __len__(self) -> int:
        return len(self._relations)

    def find(self, predicate: Callable[[Relation], bool]) -> list[Relation]:
        return [relation for relation in self._relations.values() if predicate(relation)]

    def belongs_to_target(self, model_id: str) -> BelongsToRelation:
        """The single belongs-to relation of this model pointing at `model_id`.

        Raises:
            RelationNotDefined: If there is none.
            ConfigurationError: If there are several.
        """
        matches = self.find(
            lambda relation: isinstance(relation, BelongsToRelation) and relation.related == model_id
        )
        if not matches:
            raise RelationNotDefined(f"belongs_to {model_id}", self.owner.id)
        if len(matches) > 1:
            raise ConfigurationError(
                f"Model `{self.owner.id}` has several belongs-to relations to `{model_id}`:"
                f" {', '.join(relation.accessor for relation in matches)}"
            )
        return matches[0]


__all__ = ["Relation", "BelongsToRelation", "HasManyRelation", "RelationCollection"]
