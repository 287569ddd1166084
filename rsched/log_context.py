"""Logging context: ContextVar-based log enrichment for async operations.

Every log record is enriched with a ``[op:key]`` prefix via a `ContextFilter`
attached to the root logger handlers.

Operation codes: ``req`` (outbound request), ``wh`` (webhook delivery),
``cli`` (command line tool).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

# Cross-cutting context propagated through asyncio tasks.
ctx_operation: ContextVar[str | None] = ContextVar("ctx_operation", default=None)
ctx_schedule_key: ContextVar[str | None] = ContextVar("ctx_schedule_key", default=None)


class ContextFilter(logging.Filter):
    """Inject ContextVar values into every LogRecord as ``record.ctx``."""

    def filter(self, record: logging.LogRecord) -> bool:
        op = ctx_operation.get(None)
        key = ctx_schedule_key.get(None)
        parts: list[str] = []
        if op:
            parts.append(op)
        if key:
            parts.append(key)
        record.ctx = f"[{':'.join(parts)}] " if parts else ""
        return True


def set_log_context(
    *,
    operation: str | None = None,
    key: str | None = None,
) -> None:
    """Set logging context for the current asyncio task.

    Values propagate to all coroutines called within the same task.
    Each ``asyncio.create_task()`` copies the current context automatically.
    """
    if operation is not None:
        ctx_operation.set(operation)
    if key is not None:
        ctx_schedule_key.set(key)


@contextmanager
def log_scope(*, operation: str, key: str | None = None) -> Iterator[None]:
    """Temporarily set logging context, restoring the previous values on exit.

    Outbound calls run inside the caller's task and must not leave their
    context behind.
    """
    op_token = ctx_operation.set(operation)
    key_token = ctx_schedule_key.set(key)
    try:
        yield
    finally:
        ctx_schedule_key.reset(key_token)
        ctx_operation.reset(op_token)
