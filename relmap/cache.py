"""Identity map of the records materialized by a model."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterator, Optional

from .utils.make_hashable import make_hashable

if TYPE_CHECKING:
    from .model import Model

logger = logging.getLogger(__name__)


class RecordCache(ABC):
    """Store of records keyed on their primary key value."""

    @abstractmethod
    def store(self, record: Any) -> None:
        ...  # pylint: disable=unnecessary-ellipsis

    @abstractmethod
    def retrieve(self, key: Any) -> Optional[Any]:
        ...  # pylint: disable=unnecessary-ellipsis

    @abstractmethod
    def eliminate(self, key: Any) -> None:
        ...  # pylint: disable=unnecessary-ellipsis

    @abstractmethod
    def clear(self) -> None:
        ...  # pylint: disable=unnecessary-ellipsis

    @abstractmethod
    def __iter__(self) -> Iterator[tuple[Any, Any]]:
        ...  # pylint: disable=unnecessary-ellipsis


class RuntimeRecordCache(RecordCache):
    """In-memory cache living as long as its model; safe to share between threads."""

    def __init__(self, model: Model):
        self.model = model
        self._records: dict[Any, Any] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _normalize(key: Any) -> Any:
        """Scalar parts compare by their string form, so `5` and `"5"` share an entry."""
        key = make_hashable(key)
        if isinstance(key, tuple):
            return tuple(str(part) for part in key)
        return str(key)

    def _key_of(self, record: Any) -> Any:
        columns = self.model.primary_columns
        if len(columns) == 1:
            return getattr(record, columns[0], None)
        values = tuple(getattr(record, column, None) for column in columns)
        return None if None in values else values

    def store(self, record: Any) -> None:
        """Store a record; records without a primary key value are ignored."""
        key = self._key_of(record)
        if key is None or key == "":
            return
        with self._lock:
            self._records[self._normalize(key)] = record

    def retrieve(self, key: Any) -> Optional[Any]:
        with self._lock:
            record = self._records.get(self._normalize(key))
        logger.debug("%s %s:%r", "HIT" if record is not None else "MISS", self.model.id, key)
        return record

    def eliminate(self, key: Any) -> None:
        with self._lock:
            self._records.pop(self._normalize(key), None)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __iter__(self) -> Iterator[tuple[Any, Any]]:
        with self._lock:
            return iter(list(self._records.items()))

    def __len__(self) -> int:
        return len(self._records)


__all__ = ["RecordCache", "RuntimeRecordCache"]
