"""Tests for relmap.column: construction-time checks and helper defaults."""

import pytest

from relmap import column as col
from relmap.column import Column, ColumnKind
from relmap.errors import ConfigurationError


class TestHelpers:

    def test_serial_defaults(self):
        column = col.serial()
        assert column.kind is ColumnKind.SERIAL
        assert column.size == col.BIG
        assert column.unsigned
        assert column.primary
        assert column.auto_increment
        assert not column.null
        assert not column.unique

    def test_serial_not_primary_is_unique(self):
        column = col.serial(primary=False)
        assert not column.primary
        assert column.unique

    def test_foreign_defaults(self):
        column = col.foreign()
        assert column.kind is ColumnKind.FOREIGN
        assert column.size == col.BIG
        assert column.unsigned
        assert not column.null

    def test_now_is_current_timestamp(self):
        assert col.timestamp(default=col.NOW).default == col.CURRENT_TIMESTAMP
        assert col.datetime(default="NOW").default == "CURRENT_TIMESTAMP"

    def test_boolean_default_is_stored_as_integer(self):
        assert col.boolean(default=True).default == 1

    def test_char_is_fixed_and_varchar_is_not(self):
        assert col.char(10).fixed
        assert not col.varchar(10).fixed

    def test_is_integer(self):
        assert col.integer().is_integer
        assert col.serial().is_integer
        assert col.boolean().is_integer
        assert not col.varchar().is_integer


class TestInvariants:

    @pytest.mark.parametrize("size", [0, 5, 16])
    def test_integer_size_must_be_known(self, size):
        with pytest.raises(ConfigurationError, match="size"):
            col.integer(size=size)

    def test_serial_must_be_at_least_two_bytes(self):
        with pytest.raises(ConfigurationError, match="at least 2 bytes"):
            col.serial(size=col.TINY)

    def test_serial_cannot_be_nullable(self):
        with pytest.raises(ConfigurationError, match="nullable"):
            Column(kind=ColumnKind.SERIAL, size=8, unsigned=True, primary=False, unique=True,
                   auto_increment=True, null=True)

    def test_serial_must_be_unsigned(self):
        with pytest.raises(ConfigurationError, match="unsigned"):
            Column(kind=ColumnKind.SERIAL, size=8, primary=True, auto_increment=True)

    def test_serial_must_be_unique_or_primary(self):
        with pytest.raises(ConfigurationError, match="unique or primary"):
            Column(kind=ColumnKind.SERIAL, size=8, unsigned=True, auto_increment=True)

    def test_only_serial_is_auto_incremented(self):
        with pytest.raises(ConfigurationError, match="auto-incremented"):
            Column(kind=ColumnKind.INTEGER, size=4, auto_increment=True)

    def test_fixed_char_is_at_most_255(self):
        col.char(255)
        with pytest.raises(ConfigurationError, match="at most 255"):
            col.char(256)

    def test_varchar_may_exceed_255(self):
        assert col.varchar(1000).size == 1000

    @pytest.mark.parametrize("size", [None, "TINY", "MEDIUM", "LONG"])
    def test_text_size_classes(self, size):
        assert col.text(size=size).size == size

    def test_unknown_text_size_class(self):
        with pytest.raises(ConfigurationError, match="size"):
            col.text(size="HUGE")

    def test_primary_cannot_be_nullable(self):
        with pytest.raises(ConfigurationError, match="primary key"):
            col.integer(primary=True, null=True)

    def test_columns_are_immutable(self):
        column = col.integer()
        with pytest.raises(Exception):
            column.null = True
