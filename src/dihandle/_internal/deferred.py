from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Coroutine
from dataclasses import dataclass
from typing import Any

from dihandle.exceptions import DIHandleAsyncDependencyInSyncContextError

logger = logging.getLogger(__name__)

# Keeps fire-and-forget tasks referenced until they finish.
_background_tasks: set[asyncio.Task[Any]] = set()


@dataclass(frozen=True, slots=True)
class Pending:
    """Resolution result that is not available yet.

    Internal resolution returns either the ready value itself or ``Pending``
    wrapping the task that will produce it.
    """

    task: asyncio.Future[Any]


class _DeferralSignal(BaseException):  # noqa: N818
    """Abort a constructor that dereferenced a handle whose resolution is pending.

    Only raised while a constructor is being auto-detected; the container's
    constructor path catches it, awaits ``pending`` and constructs again.
    """

    def __init__(self, pending: Pending) -> None:
        super().__init__(pending)
        self.pending = pending


def is_deferred(value: Any) -> bool:
    """Return whether ``value`` has to be awaited before it can be used.

    Only coroutines and futures (tasks included) count as asynchronous results.
    Other awaitable objects produced by a factory are instances in their own
    right and are stored as they are.
    """
    return isinstance(value, Pending) or inspect.iscoroutine(value) or asyncio.isfuture(value)


async def settle(value: Any) -> Any:
    """Await ``value`` until ``is_deferred`` no longer holds for it."""
    while is_deferred(value):
        value = await (value.task if isinstance(value, Pending) else value)
    return value


def schedule(coroutine: Coroutine[Any, Any, Any], *, description: str) -> Pending:
    """Start ``coroutine`` as a task on the running loop.

    Raises:
        DIHandleAsyncDependencyInSyncContextError: If no event loop is running.
            The coroutine is closed so it is not reported as never awaited.

    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        coroutine.close()
        msg = (
            f"{description} requires asynchronous resolution but no event loop is running. "
            "Resolve it from async code and await the result."
        )
        raise DIHandleAsyncDependencyInSyncContextError(msg) from None
    return Pending(loop.create_task(coroutine))


def run_detached(awaitable: Awaitable[Any], *, description: str) -> None:
    """Run ``awaitable`` without waiting for it, logging any failure."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        if not inspect.iscoroutine(awaitable):
            logger.warning("Dropping %s: no event loop is running to await it", description)
            return
        try:
            asyncio.run(awaitable)
        except Exception:
            logger.exception("Error in %s", description)
        return

    task = asyncio.ensure_future(awaitable, loop=loop)
    _background_tasks.add(task)

    def _done(finished: asyncio.Future[Any]) -> None:
        _background_tasks.discard(finished)  # type: ignore[arg-type]
        if finished.cancelled():
            return
        error = finished.exception()
        if error is not None:
            logger.error("Error in %s", description, exc_info=error)

    task.add_done_callback(_done)
