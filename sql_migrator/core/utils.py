"""Shared utility functions for SQL Migrator.

Bookkeeping stores execution time as integer nanoseconds and SQLite stores
``applied_at`` as a unix timestamp, so the conversions live here.
"""

import re
from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware).

    Returns:
        A timezone-aware datetime object representing the current time in UTC.
    """
    return datetime.now(timezone.utc)


def timedelta_to_nanos(value: timedelta) -> int:
    """Convert a duration to whole nanoseconds.

    Integer arithmetic is used so long durations do not lose precision.
    """
    return (
        (value.days * 86_400 + value.seconds) * 1_000_000_000
        + value.microseconds * 1_000
    )


def nanos_to_timedelta(nanos: int) -> timedelta:
    """Convert stored nanoseconds back to a duration (microsecond resolution)."""
    return timedelta(microseconds=nanos // 1_000)


def from_unix_timestamp(value: int | float | None) -> datetime | None:
    """Convert a unix timestamp column to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def format_duration(value: timedelta) -> str:
    """Human readable duration for log lines, e.g. ``12.345ms``."""
    ms = value.total_seconds() * 1000
    if ms >= 1000:
        return f"{ms / 1000:.3f}s"
    return f"{ms:.3f}ms"


_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def is_valid_table_name(name: str) -> bool:
    """Whether ``name`` is a plain (optionally schema-qualified) SQL identifier.

    The bookkeeping table name is embedded directly into DDL and DML, so
    anything needing quoting is rejected.
    """
    return bool(_TABLE_NAME_RE.match(name))
