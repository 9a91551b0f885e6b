import datetime
import enum

import pytest

from relmap.utils.format_datetime import format_datetime
from relmap.utils.make_alias import make_alias
from relmap.utils.make_hashable import make_hashable


class Color(enum.Enum):
    RED = "red"


def test_make_hashable_scalars():
    assert make_hashable(5) == 5
    assert make_hashable("a") == "a"
    assert make_hashable(None) is None
    assert make_hashable(Color.RED) == "red"


def test_make_hashable_containers():
    assert make_hashable([1, (2, 3)]) == (1, (2, 3))
    assert make_hashable({"b": 2, "a": [1]}) == (("a", (1,)), ("b", 2))
    assert hash(make_hashable({"k": [1, 2]})) == hash((("k", (1, 2)),))


def test_make_hashable_rejects_unknown_types():
    with pytest.raises(ValueError):
        make_hashable(object())


@pytest.mark.parametrize("name,alias", [
    ("users", "user"),
    ("site_nodes", "node"),
    ("categories", "category"),
    ("people", "person"),
])
def test_make_alias(name, alias):
    assert make_alias(name) == alias


def test_format_datetime():
    naive = datetime.datetime(2024, 5, 6, 7, 8, 9)
    assert format_datetime(naive) == "2024-05-06 07:08:09"
    aware = datetime.datetime(2024, 5, 6, 7, 8, 9, tzinfo=datetime.timezone(datetime.timedelta(hours=-3)))
    assert format_datetime(aware) == "2024-05-06 10:08:09"
    assert format_datetime(datetime.date(2024, 5, 6)) == "2024-05-06"
    assert format_datetime("2024") == "2024"
    assert format_datetime(None) is None
