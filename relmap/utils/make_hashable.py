"""Convert record keys to a hashable form usable as identity-map keys."""

import datetime
import enum


def make_hashable(thing):
    """Return a hashable representation of a primary key value (scalar, sequence or mapping)."""
    if isinstance(thing, enum.Enum):
        return thing.value
    if isinstance(thing, dict):
        return tuple(
            (key, make_hashable(value))
            for key, value
            in sorted(thing.items(), key=lambda item: item[0])
        )
    if isinstance(thing, (list, tuple)):
        return tuple(make_hashable(value) for value in thing)
    if isinstance(thing, (int, float, str, bytes, type(None), datetime.date)):
        return thing
    raise ValueError(f"Cannot hash `{thing}`, {type(thing)}")
