"""Sync trace ids that tie a preload pass and its worker fetches together."""

import contextvars
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

_sync_trace_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "sync_trace_id", default=None
)


def current_trace_id() -> str | None:
    """Trace id of the sync operation running in this context, if any."""
    return _sync_trace_id.get()


@contextmanager
def sync_trace() -> Iterator[str]:
    """
    Run a block under a sync trace id.

    An id already active in the context is reused so nested operations
    (a preload calling ``get_ranked_list``) journal under one trace. A new id
    is removed again when the block exits.

    Yields:
        The active trace id
    """
    active = _sync_trace_id.get()
    if active is not None:
        yield active
        return

    token = _sync_trace_id.set(str(uuid.uuid4()))
    try:
        yield _sync_trace_id.get()
    finally:
        _sync_trace_id.reset(token)


def run_in_context(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Bind a callable to a snapshot of the caller's context.

    Pool threads start with an empty context, so each preload task is wrapped
    with this to keep the submitting trace id. Every call to this function
    takes its own snapshot; one snapshot cannot run on two threads at once.
    """
    context = contextvars.copy_context()

    def runner(*args, **kwargs):
        return context.run(func, *args, **kwargs)

    return runner
