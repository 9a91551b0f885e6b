"""Declarative configuration: connections, models and their associations.

`ConfigBuilder` accumulates definitions and validates them as a whole in
`build()`, resolving the keys of every association along the way:

    builder = ConfigBuilder()
    builder.add_connection("sqlite:///:memory:")
    builder.add_model("users", lambda schema: schema.add_serial("id").add_varchar("name"))
    builder.add_model("posts", lambda schema: (
        schema.add_serial("id").add_foreign("user_id").add_text("body")
    ), associations=lambda a: a.belongs_to("users", local_key="user_id"))
    models = builder.build().create_models()
    models["posts"].where({"user_id": 1}).all()
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Literal, Optional, Union

import inflection
from pydantic import BaseModel, ConfigDict

from .column import Column, ColumnKind
from .connection import ConnectionCollection, ConnectionDefinition, DatabaseUrl
from .errors import ConfigurationError
from .model import ModelCollection
from .query import Query
from .record import Record
from .schema import Schema
from .schema_builder import SchemaBuilder

logger = logging.getLogger(__name__)


class BelongsToAssociation(BaseModel):
    """A resolved belongs-to association: `local_key` of the owner matches `foreign_key` of `associate`."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["belongs_to"] = "belongs_to"
    associate: str
    local_key: str
    foreign_key: str
    accessor: str


class HasManyAssociation(BaseModel):
    """A resolved has-many association, optionally through a pivot model."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["has_many"] = "has_many"
    associate: str
    local_key: str
    foreign_key: str
    accessor: str
    through: Optional[str] = None


Association = Union[BelongsToAssociation, HasManyAssociation]


class ModelDefinition(BaseModel):
    """Everything needed to instantiate a model."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    name: str
    """Table name, without the connection prefix."""
    table_schema: Schema
    alias: Optional[str] = None
    connection: str = "default"
    extends: Optional[str] = None
    implements: tuple[tuple[str, bool], ...] = ()
    """Implemented model ids, with their `loose` flag."""
    record_class: Optional[type] = None
    query_class: Optional[type] = None
    associations: tuple[Association, ...] = ()


class Config(BaseModel):
    """A validated configuration."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    connections: dict[str, ConnectionDefinition] = {}
    models: dict[str, ModelDefinition] = {}

    def create_connections(self) -> ConnectionCollection:
        return ConnectionCollection(self.connections)

    def create_models(self, connections: Optional[ConnectionCollection] = None) -> ModelCollection:
        return ModelCollection(connections or self.create_connections(), self.models)


class _PendingAssociation(BaseModel):
    kind: Literal["belongs_to", "has_many"]
    associate: str
    local_key: Optional[str] = None
    foreign_key: Optional[str] = None
    accessor: Optional[str] = None
    through: Optional[str] = None


class AssociationBuilder:
    """Collects the associations of one model; keys are resolved by ConfigBuilder.build()."""

    def __init__(self):
        self.associations: list[_PendingAssociation] = []

    def belongs_to(self, associate: str, local_key: Optional[str] = None,
                   foreign_key: Optional[str] = None, as_: Optional[str] = None) -> AssociationBuilder:
        self.associations.append(_PendingAssociation(
            kind="belongs_to", associate=associate, local_key=local_key,
            foreign_key=foreign_key, accessor=as_,
        ))
        return self

    def has_many(self, associate: str, local_key: Optional[str] = None, foreign_key: Optional[str] = None,
                 as_: Optional[str] = None, through: Optional[str] = None) -> AssociationBuilder:
        self.associations.append(_PendingAssociation(
            kind="has_many", associate=associate, local_key=local_key,
            foreign_key=foreign_key, accessor=as_, through=through,
        ))
        return self


class _PendingModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    name: str
    table_schema: Schema
    alias: Optional[str] = None
    connection: str = "default"
    extends: Optional[str] = None
    implements: tuple[tuple[str, bool], ...] = ()
    record_class: Optional[type] = None
    query_class: Optional[type] = None
    associations: list[_PendingAssociation] = []


SchemaSource = Union[Schema, SchemaBuilder, Callable[[SchemaBuilder], Any], None]


def _inherited_primary(column: Column) -> Column:
    """The parent's primary column as stored by a child table."""
    if column.kind in (ColumnKind.INTEGER, ColumnKind.SERIAL, ColumnKind.FOREIGN):
        return Column(kind=ColumnKind.FOREIGN, size=column.size, unsigned=column.unsigned, primary=True)
    return column.model_copy(update={"primary": True, "unique": False, "auto_increment": False, "null": False})


class ConfigBuilder:
    """Accumulates connection and model definitions, then validates them all at once."""

    def __init__(self):
        self._connections: dict[str, ConnectionDefinition] = {}
        self._models: dict[str, _PendingModel] = {}

    def add_connection(self, database_url: DatabaseUrl, name: str = "default",
                       table_name_prefix: str = "") -> ConfigBuilder:
        if not isinstance(database_url, str) and not callable(database_url):
            raise ValueError(
                f"`database_url` should be a str, or a method returning a str; got {database_url!r}"
            )
        self._connections[name] = ConnectionDefinition(
            id=name, url=database_url, table_name_prefix=table_name_prefix,
        )
        return self

    def add_model(
        self,
        model_id: str,
        schema: SchemaSource = None,
        *,
        name: Optional[str] = None,
        alias: Optional[str] = None,
        connection: str = "default",
        extends: Optional[str] = None,
        implements: Iterable[str] = (),
        loose: Iterable[str] = (),
        record_class: Optional[type] = None,
        query_class: Optional[type] = None,
        associations: Union[AssociationBuilder, Callable[[AssociationBuilder], Any], None] = None,
    ) -> ConfigBuilder:
        """Declare a model.

        Args:
            model_id: Id of the model, also its table name unless `name` is given.
            schema: A Schema, a SchemaBuilder, or a callable filling the
                SchemaBuilder it is given. When omitted, the schema is read
                from the annotations of `record_class`.
            extends: Id of the parent model; the child table gets the parent's primary key.
            implements: Ids of models always INNER joined when reading.
            loose: Ids of models always LEFT joined when reading.
            record_class: Record subclass of the model's records.
            query_class: Query subclass returned by the model's query().
            associations: An AssociationBuilder, or a callable filling the one it is given.

        Raises:
            ConfigurationError: If the model is already declared, or its schema or classes are invalid.
        """
        if model_id in self._models:
            raise ConfigurationError(f"Model `{model_id}` is already defined")
        if record_class is not None and not (isinstance(record_class, type) and issubclass(record_class, Record)):
            raise ConfigurationError(f"Record class of `{model_id}` must extend Record: {record_class!r}")
        if query_class is not None and not (isinstance(query_class, type) and issubclass(query_class, Query)):
            raise ConfigurationError(f"Query class of `{model_id}` must extend Query: {query_class!r}")

        if isinstance(associations, AssociationBuilder):
            association_builder = associations
        else:
            association_builder = AssociationBuilder()
            if associations is not None:
                associations(association_builder)

        joined = [(implemented, False) for implemented in implements]
        joined += [(implemented, True) for implemented in loose]

        self._models[model_id] = _PendingModel(
            id=model_id,
            name=name or model_id,
            table_schema=self._resolve_schema(model_id, schema, record_class, extends is not None),
            alias=alias,
            connection=connection,
            extends=extends,
            implements=tuple(joined),
            record_class=record_class,
            query_class=query_class,
            associations=list(association_builder.associations),
        )
        return self

    @staticmethod
    def _resolve_schema(model_id: str, schema: SchemaSource, record_class: Optional[type],
                        extends: bool) -> Schema:
        if isinstance(schema, Schema):
            return schema
        if isinstance(schema, SchemaBuilder):
            return schema.build()
        if callable(schema):
            builder = SchemaBuilder()
            schema(builder)
            return builder.build()
        if schema is None and record_class is not None:
            return SchemaBuilder.from_record(record_class).build()
        if schema is None and extends:
            return Schema()
        raise ConfigurationError(f"Model `{model_id}` has no schema")

    # build

    def build(self) -> Config:
        """Validate every definition and resolve association keys.

        Raises:
            ConfigurationError: On a missing connection, parent or implemented
                model; a composite parent key; an unresolvable association key;
                a duplicate accessor; or an ambiguous `through` pivot.
        """
        for pending in self._models.values():
            if pending.connection not in self._connections:
                raise ConfigurationError(
                    f"Model `{pending.id}` uses undefined connection `{pending.connection}`"
                )
            if pending.extends is not None and pending.extends not in self._models:
                raise ConfigurationError(f"Model `{pending.id}` extends undefined model `{pending.extends}`")
            for implemented, _ in pending.implements:
                if implemented not in self._models:
                    raise ConfigurationError(
                        f"Model `{pending.id}` implements undefined model `{implemented}`"
                    )

        for model_id in self._models:
            self._check_lineage(model_id)
        own_schemas: dict[str, Schema] = {}
        for model_id in self._models:
            self._own_schema(model_id, own_schemas)
        schemas = {model_id: self._chain_schema(model_id, own_schemas) for model_id in self._models}

        definitions = {}
        for model_id, pending in self._models.items():
            own_schema = own_schemas[model_id]
            associations = tuple(
                self._resolve_association(pending, association, schemas)
                for association in pending.associations
            )
            accessors = [association.accessor for association in associations]
            duplicates = sorted({accessor for accessor in accessors if accessors.count(accessor) > 1})
            if duplicates:
                raise ConfigurationError(
                    f"Model `{model_id}` declares the relation(s) {', '.join(duplicates)} more than once"
                )
            definitions[model_id] = ModelDefinition(
                id=model_id,
                name=pending.name,
                table_schema=own_schema,
                alias=pending.alias,
                connection=pending.connection,
                extends=pending.extends,
                implements=pending.implements,
                record_class=pending.record_class,
                query_class=pending.query_class,
                associations=associations,
            )

        for definition in definitions.values():
            for association in definition.associations:
                if association.kind == "has_many" and association.through is not None:
                    self._check_through(definition, association, definitions)

        logger.debug("Configuration built: %d connection(s), %d model(s)", len(self._connections), len(definitions))
        return Config(connections=dict(self._connections), models=definitions)

    def _check_lineage(self, model_id: str) -> None:
        seen = []
        current = model_id
        while current is not None:
            if current in seen:
                raise ConfigurationError(f"Circular inheritance: {' > '.join(seen + [current])}")
            seen.append(current)
            current = self._models[current].extends

    def _own_schema(self, model_id: str, own_schemas: dict[str, Schema]) -> Schema:
        """The model's table schema: its columns, behind the parent's primary key when it extends."""
        if model_id in own_schemas:
            return own_schemas[model_id]
        pending = self._models[model_id]
        if pending.extends is None:
            schema = pending.table_schema
        else:
            parent = self._own_schema(pending.extends, own_schemas)
            primary = parent.primary
            if not isinstance(primary, str):
                raise ConfigurationError(
                    f"Model `{model_id}` cannot extend `{pending.extends}`, whose primary key is"
                    f" not a single column ({primary!r})"
                )
            columns = {primary: _inherited_primary(parent[primary])}
            columns.update((name, column) for name, column in pending.table_schema.items() if name != primary)
            schema = Schema(columns=columns, indexes=pending.table_schema.indexes)
        own_schemas[model_id] = schema
        return schema

    def _chain_schema(self, model_id: str, own_schemas: dict[str, Schema]) -> Schema:
        """Columns of the model's whole chain, most-ancestral first."""
        schema = own_schemas[model_id]
        parent = self._models[model_id].extends
        while parent is not None:
            schema = own_schemas[parent].merge(schema)
            parent = self._models[parent].extends
        return schema

    def _primary_of(self, model_id: str, schemas: dict[str, Schema], purpose: str) -> str:
        primary = schemas[model_id].primary
        if not isinstance(primary, str):
            raise ConfigurationError(
                f"Cannot resolve {purpose}: `{model_id}` has no single-column primary key ({primary!r})"
            )
        return primary

    def _resolve_association(self, owner: _PendingModel, association: _PendingAssociation,
                             schemas: dict[str, Schema]) -> Association:
        associate = association.associate
        if associate not in self._models:
            raise ConfigurationError(f"Model `{owner.id}` is associated with undefined model `{associate}`")
        owner_schema = schemas[owner.id]
        related_schema = schemas[associate]

        if association.kind == "belongs_to":
            foreign_key = association.foreign_key or self._primary_of(
                associate, schemas, f"`{owner.id}` belongs to `{associate}`"
            )
            local_key = association.local_key
            if local_key is None:
                if foreign_key not in owner_schema:
                    raise ConfigurationError(
                        f"Cannot resolve the local key of `{owner.id}` belongs to `{associate}`:"
                        f" `{owner.id}` has no column `{foreign_key}`"
                    )
                local_key = foreign_key
            elif local_key not in owner_schema:
                raise ConfigurationError(f"Model `{owner.id}` has no column `{local_key}`")
            return BelongsToAssociation(
                associate=associate, local_key=local_key, foreign_key=foreign_key,
                accessor=association.accessor or inflection.singularize(associate),
            )

        local_key = association.local_key or self._primary_of(
            owner.id, schemas, f"`{owner.id}` has many `{associate}`"
        )
        if association.through is not None:
            if association.through not in self._models:
                raise ConfigurationError(
                    f"Model `{owner.id}` has many `{associate}` through undefined model `{association.through}`"
                )
            foreign_key = association.foreign_key or self._primary_of(
                associate, schemas, f"`{owner.id}` has many `{associate}`"
            )
        else:
            foreign_key = association.foreign_key
            if foreign_key is None:
                owner_primary = self._primary_of(owner.id, schemas, f"`{owner.id}` has many `{associate}`")
                if owner_primary not in related_schema:
                    raise ConfigurationError(
                        f"Cannot resolve the foreign key of `{owner.id}` has many `{associate}`:"
                        f" `{associate}` has no column `{owner_primary}`"
                    )
                foreign_key = owner_primary
        return HasManyAssociation(
            associate=associate, local_key=local_key, foreign_key=foreign_key,
            accessor=association.accessor or associate, through=association.through,
        )

    @staticmethod
    def _check_through(owner: ModelDefinition, association: HasManyAssociation,
                       definitions: dict[str, ModelDefinition]) -> None:
        pivot = definitions[association.through]
        for side in (owner.id, association.associate):
            matches = [
                candidate for candidate in pivot.associations
                if candidate.kind == "belongs_to" and candidate.associate == side
            ]
            if len(matches) != 1:
                raise ConfigurationError(
                    f"`{owner.id}.{association.accessor}` goes through `{pivot.id}`, which must belong to"
                    f" `{side}` exactly once, found {len(matches)}"
                )


__all__ = [
    "BelongsToAssociation",
    "HasManyAssociation",
    "Association",
    "ModelDefinition",
    "Config",
    "AssociationBuilder",
    "ConfigBuilder",
]
