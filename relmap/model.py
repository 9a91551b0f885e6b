"""Models: tables bound to a record class, relations and a record cache.

Models are built lazily by a ModelCollection from their definitions (see
relmap.config), parents before children.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Iterator, Mapping, Optional, Sequence

from .cache import RuntimeRecordCache
from .connection import Connection, ConnectionCollection
from .errors import ConfigurationError, ModelAlreadyInstantiated, ModelNotDefined, RecordNotFound
from .query import Query
from .record import Record
from .relation import RelationCollection
from .statement import FetchMode
from .table import Table

if TYPE_CHECKING:
    from .config import ModelDefinition

logger = logging.getLogger(__name__)

# query builder and finisher names reachable directly on a model
QUERY_METHODS = frozenset((
    "select", "join", "where", "and_", "group", "having", "order", "limit", "offset", "mode",
    "all", "one", "pairs", "rc", "exists", "count", "sum", "average", "minimum", "maximum", "compute",
))


class Model(Table):
    """A table whose rows are materialized as records of `record_class`."""

    def __init__(
        self,
        models: ModelCollection,
        definition: ModelDefinition,
        connection: Connection,
        parent: Optional[Model] = None,
        implements: Sequence[tuple[Model, bool]] = (),
    ):
        super().__init__(
            connection, definition.name, definition.table_schema,
            alias=definition.alias, parent=parent, implements=implements,
        )
        self.id = definition.id
        self.definition = definition
        self.models = models
        self.record_class = definition.record_class or Record
        self.query_class = definition.query_class or Query
        self.cache = RuntimeRecordCache(self)
        self.relations = RelationCollection(self)
        for association in definition.associations:
            self.relations.apply(association)

    def __repr__(self):
        return f"<Model {self.id!r} {self.name!r}>"

    def __getattr__(self, name: str) -> Any:
        if name in QUERY_METHODS or name.startswith("filter_by_"):
            return getattr(self.query(), name)
        # scopes of a custom query class
        query_class = self.__dict__.get("query_class")
        if query_class is not None and not name.startswith("_") and callable(getattr(query_class, name, None)):
            return getattr(self.query(), name)
        raise AttributeError(f"{type(self).__name__} `{self.__dict__.get('id')}` has no attribute `{name}`")

    @property
    def parent_model(self) -> Optional[Model]:
        return self.parent

    def query(self) -> Query:
        return self.query_class(self)

    # records

    def new(self, **properties: Any) -> Record:
        """Build a validated, unsaved record."""
        return self.record_class(**properties).bind(self)

    def instantiate(self, row: Mapping[str, Any]) -> Record:
        """Record factory for fetched rows: no validation, stored in the cache."""
        record = self.record_class.model_construct(**row).bind(self, persisted=True)
        self.cache.store(record)
        return record

    def find(self, *keys: Any) -> Any:
        """Find records by primary key, from the cache when possible.

        `find(key)` returns a record, `find(k1, k2)` and `find([k1, k2])`
        return a dict of key to record.

        Raises:
            RecordNotFound: If any key is missing; `records` holds what was found.
            ConfigurationError: If the primary key is composite.
        """
        primary = self.primary
        if not isinstance(primary, str):
            raise ConfigurationError(f"find() is not supported for the composite key of `{self.id}`")
        many = len(keys) != 1
        if len(keys) == 1 and isinstance(keys[0], (list, tuple, set)):
            keys = tuple(keys[0])
            many = True
        records = {key: self.cache.retrieve(key) for key in keys}
        missing = [key for key, record in records.items() if record is None]
        if missing:
            fetched = self.query().where({f"{self.alias}.{primary}": missing}).all(FetchMode.RECORD)
            by_key = {str(getattr(record, primary)): record for record in fetched}
            for key in missing:
                records[key] = by_key.get(str(key))
        not_found = [key for key, record in records.items() if record is None]
        if not_found:
            raise RecordNotFound(
                f"Record not found in `{self.id}`: {', '.join(str(key) for key in not_found)}", records,
            )
        return records if many else records[keys[0]]

    def __getitem__(self, key: Any) -> Any:
        return self.find(key)

    # writes

    def _eliminate(self, key: Any) -> None:
        for model in (self,) + self.ancestors:
            model.cache.eliminate(key)

    def save(self, values: Mapping[str, Any], key: Any = None) -> Any:
        if key is not None:
            self._eliminate(key)
        return super().save(values, key)

    def update(self, values: Mapping[str, Any], key: Any) -> None:
        self._eliminate(key)
        super().update(values, key)

    def delete(self, key: Any) -> None:
        self._eliminate(key)
        super().delete(key)


class ModelCollection:
    """Models of a configuration, instantiated on first lookup."""

    def __init__(self, connections: ConnectionCollection,
                 definitions: Optional[Mapping[str, ModelDefinition]] = None):
        self.connections = connections
        self._definitions: dict[str, ModelDefinition] = dict(definitions or {})
        self._models: dict[str, Model] = {}
        self._lock = threading.RLock()

    def define(self, definition: ModelDefinition) -> None:
        """Add or replace a definition; not allowed once the model is built."""
        with self._lock:
            if definition.id in self._models:
                raise ModelAlreadyInstantiated(definition.id)
            self._definitions[definition.id] = definition

    def __getitem__(self, model_id: str) -> Model:
        with self._lock:
            model = self._models.get(model_id)
            if model is not None:
                return model
            try:
                definition = self._definitions[model_id]
            except KeyError as error:
                raise ModelNotDefined(model_id) from error
            parent = self[definition.extends] if definition.extends else None
            implements = tuple((self[implemented], loose) for implemented, loose in definition.implements)
            model = Model(self, definition, self.connections[definition.connection], parent, implements)
            self._models[model_id] = model
            logger.debug("Model `%s` instantiated", model_id)
            return model

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._definitions

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._definitions))

    def __len__(self) -> int:
        return len(self._definitions)

    @property
    def definitions(self) -> dict[str, ModelDefinition]:
        return dict(self._definitions)

    def model_for_record(self, record_class: type) -> Model:
        """The model whose definition declares `record_class`, or its nearest base."""
        for cls in record_class.__mro__:
            for definition in self._definitions.values():
                if definition.record_class is cls:
                    return self[definition.id]
        raise ModelNotDefined(record_class.__name__)

    def _installation_order(self) -> list[Model]:
        ordered = []
        for model_id in self:
            for model in self[model_id].lineage:
                if model not in ordered:
                    ordered.append(model)
        return ordered

    def install(self) -> list[str]:
        """Create the missing tables, parents first, and return their model ids."""
        installed = []
        for model in self._installation_order():
            if model.is_installed():
                continue
            model.install()
            installed.append(model.id)
        return installed

    def uninstall(self) -> None:
        """Drop every table, children first."""
        for model in reversed(self._installation_order()):
            model.uninstall()

    def is_installed(self) -> dict[str, bool]:
        return {model_id: self[model_id].is_installed() for model_id in self}


__all__ = ["Model", "ModelCollection", "QUERY_METHODS"]
