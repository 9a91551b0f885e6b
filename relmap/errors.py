"""Exception taxonomy for relmap.

Configuration errors are raised while models are being defined or built,
execution errors wrap driver exceptions with the offending statement attached.
"""

import json
from typing import Any, Optional


class RelmapError(Exception):
    """Base class for every error raised by relmap."""


class ConfigurationError(RelmapError):
    """Invalid schema, model or association definition."""


class RelationIntegrityError(RelmapError):
    """A relation accessor was invoked on a record missing a required key."""


class RenderingError(RelmapError):
    """A column cannot be rendered by the active dialect."""

    def __init__(self, message: str, column: Optional[str] = None, dialect: Optional[str] = None):
        self.column = column
        self.dialect = dialect
        super().__init__(message)


def _format_args(args) -> str:
    return json.dumps(list(args), default=str, ensure_ascii=False)


class ExecutionError(RelmapError):
    """A statement could not be prepared or executed.

    `arguments` is None when the failure happened before any argument was bound.
    """

    def __init__(self, message: str, statement: str, args: Optional[list[Any]] = None,
                 original: Optional[BaseException] = None):
        self.statement = statement
        self.arguments = args
        self.original = original
        super().__init__(message)


class StatementNotPrepared(ExecutionError):
    """The statement failed to prepare."""

    def __init__(self, statement: str, original: Optional[BaseException] = None):
        message = f"Statement preparation failed: `{statement}`"
        if original is not None:
            message += f": {original}"
        super().__init__(message, statement=statement, args=None, original=original)


class StatementNotValid(ExecutionError):
    """A prepared statement failed to execute with the given arguments."""

    def __init__(self, statement: str, args: list[Any], original: Optional[BaseException] = None):
        message = f"`{statement}` {_format_args(args)}"
        if original is not None:
            message += f": {original}"
        super().__init__(message, statement=statement, args=list(args), original=original)


class PartialWriteError(RelmapError):
    """A multi-table write failed after some tables of the chain were written."""

    def __init__(self, table: str, written: list[str], key: Any = None):
        self.table = table
        self.written = list(written)
        self.key = key
        super().__init__(
            f"Write to `{table}` failed after writing {', '.join(f'`{w}`' for w in written)}"
            f" (key={key!r}); no rollback was attempted"
        )


class RecordNotFound(RelmapError):
    """One or more records could not be found.

    `records` maps every requested key to its record, or None when missing.
    """

    def __init__(self, message: str, records: Optional[dict] = None):
        self.records = records or {}
        super().__init__(message)


class ModelNotDefined(RelmapError, KeyError):
    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Model not defined: {model_id}")

    def __str__(self):
        return self.args[0]


class ModelAlreadyInstantiated(RelmapError):
    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Model already instantiated: {model_id}")


class RelationNotDefined(RelmapError, KeyError):
    def __init__(self, name: str, owner_id: Optional[str] = None):
        self.name = name
        self.owner_id = owner_id
        where = f" on model `{owner_id}`" if owner_id else ""
        super().__init__(f"Relation not defined: {name}{where}")

    def __str__(self):
        return self.args[0]


class ConnectionNotDefined(RelmapError, KeyError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No connection configured with name=`{name}`")

    def __str__(self):
        return self.args[0]


class ScopeNotDefined(RelmapError, AttributeError):
    """Unknown attribute requested on a query."""

    def __init__(self, name: str, model_id: Optional[str] = None):
        self.name = name
        self.model_id = model_id
        super().__init__(f"Scope `{name}` is not defined for model `{model_id}`")


__all__ = [
    "RelmapError",
    "ConfigurationError",
    "RelationIntegrityError",
    "RenderingError",
    "ExecutionError",
    "StatementNotPrepared",
    "StatementNotValid",
    "PartialWriteError",
    "RecordNotFound",
    "ModelNotDefined",
    "ModelAlreadyInstantiated",
    "RelationNotDefined",
    "ConnectionNotDefined",
    "ScopeNotDefined",
]
