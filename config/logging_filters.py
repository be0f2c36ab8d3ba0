"""
Logging filters for structured log output.

Provides correlation ID tracking across sync runs. Sync passes are
asyncio-based, so the id lives in a context variable and follows every
task spawned from the run.
"""
import contextlib
import contextvars
import logging
import uuid

_correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


def get_correlation_id() -> str:
    """Get the current correlation ID (empty string if not set)."""
    return _correlation_id.get()


def set_correlation_id(cid: str) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id.set(cid)


@contextlib.contextmanager
def correlation_scope(prefix: str = "sync"):
    """Bind a fresh correlation ID for the duration of the block."""
    token = _correlation_id.set(f"{prefix}-{uuid.uuid4().hex[:8]}")
    try:
        yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Attach correlation_id to every log record."""

    def filter(self, record):
        record.correlation_id = get_correlation_id()
        return True
