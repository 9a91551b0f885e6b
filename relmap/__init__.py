"""relmap: a relational persistence layer built on Pydantic and SQL."""

from .column import Column, ColumnAttribute, ColumnKind
from .schema import Index, Schema
from .schema_builder import SchemaBuilder
from .connection import Connection, ConnectionCollection
from .statement import FetchMode, Statement
from .table import Table
from .query import Query
from .record import Record
from .model import Model, ModelCollection
from .config import AssociationBuilder, Config, ConfigBuilder
from .errors import (
    ConfigurationError,
    ExecutionError,
    PartialWriteError,
    RecordNotFound,
    RelationIntegrityError,
    RelmapError,
    RenderingError,
)
