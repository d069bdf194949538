"""Operation tracing and timing utilities for SQL Migrator.

Each public Migrator operation runs inside an :class:`OperationContext`
stored in a contextvar, so log lines emitted by the core, the adapters and
migration bodies during one call can be correlated.

Usage:
    with operation_context("migrate", table="_sqlx_migrations") as op:
        logger.info("starting")  # formatted as "[op=migrate][run=...] starting"

    timing = TimingContext()
    with timing.measure("checksum"):
        ...
    print(f"Total: {timing.total_ms():.2f}ms")
"""

from __future__ import annotations

import contextvars
import time
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contextvars import Token

from sql_migrator.core.utils import utc_now


@dataclass
class OperationContext:
    """Context information for one migrator operation.

    Attributes:
        run_id: Unique identifier for the invocation (first 12 chars of UUID).
        operation: Operation name, e.g. ``migrate`` or ``status``.
        started_at: When the operation started.
        table: Bookkeeping table the operation works on.
    """

    run_id: str
    operation: str
    started_at: datetime
    table: str | None = None

    @classmethod
    def create(cls, operation: str, table: str | None = None) -> OperationContext:
        return cls(
            run_id=uuid.uuid4().hex[:12],
            operation=operation,
            started_at=utc_now(),
            table=table,
        )

    def elapsed_ms(self) -> float:
        return (utc_now() - self.started_at).total_seconds() * 1000


_context: contextvars.ContextVar[OperationContext | None] = contextvars.ContextVar(
    "operation_context", default=None
)


def get_current_context() -> OperationContext | None:
    """Get the current operation context, or None outside an operation."""
    return _context.get()


def set_context(ctx: OperationContext) -> Token[OperationContext | None]:
    return _context.set(ctx)


def clear_context(token: Token[OperationContext | None]) -> None:
    _context.reset(token)


def format_context_prefix(ctx: OperationContext | None) -> str:
    """Format ``[op=xxx][run=yyy]`` for log lines, or an empty string."""
    if ctx is None:
        return ""
    return f"[op={ctx.operation}][run={ctx.run_id}]"


@contextmanager
def operation_context(
    operation: str,
    table: str | None = None,
) -> Generator[OperationContext, None, None]:
    """Set a fresh OperationContext for the duration of the block.

    A nested call keeps the outer context so that, for example, ``migrate_all``
    delegating to ``migrate`` logs under one run id.
    """
    current = _context.get()
    if current is not None:
        yield current
        return

    ctx = OperationContext.create(operation, table=table)
    token = set_context(ctx)
    try:
        yield ctx
    finally:
        clear_context(token)


@dataclass
class TimingContext:
    """Accumulates named phase durations in milliseconds."""

    timings: dict[str, float] = field(default_factory=dict)

    @contextmanager
    def measure(self, name: str) -> Generator[None, None, None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = (time.perf_counter() - start) * 1000
            self.timings[name] = self.timings.get(name, 0.0) + elapsed

    def total_ms(self) -> float:
        return sum(self.timings.values())
