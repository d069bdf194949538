"""Unit tests for sql_migrator.core.utils."""

from __future__ import annotations

from datetime import timedelta, timezone

import pytest

from sql_migrator.core.utils import (
    format_duration,
    from_unix_timestamp,
    is_valid_table_name,
    nanos_to_timedelta,
    timedelta_to_nanos,
    utc_now,
)

pytestmark = pytest.mark.unit


class TestDurations:
    """Tests for duration conversions."""

    def test_nanos_round_trip_at_microsecond_resolution(self) -> None:
        value = timedelta(days=2, seconds=5, microseconds=123)

        assert timedelta_to_nanos(value) == (2 * 86_400 + 5) * 1_000_000_000 + 123_000
        assert nanos_to_timedelta(timedelta_to_nanos(value)) == value

    def test_sub_microsecond_nanos_truncate(self) -> None:
        assert nanos_to_timedelta(1_999) == timedelta(microseconds=1)

    def test_format_duration(self) -> None:
        assert format_duration(timedelta(milliseconds=12, microseconds=345)) == "12.345ms"
        assert format_duration(timedelta(seconds=2, milliseconds=500)) == "2.500s"


class TestTimestamps:
    """Tests for timestamp helpers."""

    def test_utc_now_is_aware(self) -> None:
        assert utc_now().tzinfo is timezone.utc

    def test_from_unix_timestamp(self) -> None:
        value = from_unix_timestamp(0)

        assert value is not None
        assert value.year == 1970
        assert value.tzinfo is timezone.utc
        assert from_unix_timestamp(None) is None


class TestTableNames:
    """Tests for bookkeeping table name validation."""

    @pytest.mark.parametrize("name", ["_sqlx_migrations", "history", "public.migrations"])
    def test_valid(self, name: str) -> None:
        assert is_valid_table_name(name)

    @pytest.mark.parametrize(
        "name",
        ["", "1table", "my table", "a.b.c", "t; DROP TABLE users", '"quoted"'],
    )
    def test_invalid(self, name: str) -> None:
        assert not is_valid_table_name(name)
