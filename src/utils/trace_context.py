"""Trace ID of the collection cycle in progress.

The ID lives in a context variable so every log entry and event emitted
during one cycle can be correlated, including those from worker threads
that run a callable wrapped with :func:`bind_context`.
"""

import contextvars
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Optional

_current_trace: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "collection_trace_id", default=None
)


def new_trace_id() -> str:
    return str(uuid.uuid4())


def get_current_trace() -> Optional[str]:
    return _current_trace.get()


@contextmanager
def collection_trace(trace_id: Optional[str] = None) -> Iterator[str]:
    """
    Run a block under ``trace_id``, or a fresh trace ID when omitted.

    The previous value is restored on exit, even if the block raises.
    """
    token = _current_trace.set(trace_id or new_trace_id())
    try:
        yield _current_trace.get()
    finally:
        _current_trace.reset(token)


def bind_context(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Snapshot the caller's context and return a callable that runs ``func``
    inside it.

    Executor threads do not inherit context variables; submit the wrapped
    callable instead so the worker sees the caller's trace ID.
    """
    snapshot = contextvars.copy_context()

    def run_in_snapshot(*args: Any, **kwargs: Any) -> Any:
        return snapshot.run(func, *args, **kwargs)

    return run_in_snapshot
