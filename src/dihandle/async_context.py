"""Handles whose value is bound per task instead of per container.

``AsyncContext`` registers a handle to a proxy that reads the value bound for
it in the current ``contextvars`` context. Each asyncio task sees the bindings
that were active when it was created, so request-scoped values (the current
user, a request id) can be injected once and read anywhere below the scope::

    request: Request = create_handle("request")
    context = AsyncContext(container)

    async def on_request(raw):
        return await context.run_with_context(request, Request(raw), process)

    async def process():
        return request.user_id  # value bound for the current task
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from dihandle.container import Container
from dihandle.exceptions import DIHandleContextError
from dihandle.handles import Handle, ensure_handle, get_handle_name
from dihandle.lifecycle import Lifecycle

_bound_values: ContextVar[Mapping[Handle, Any]] = ContextVar("dihandle_bound_values", default={})


class _ContextProxy:
    """Forward attribute access to the value bound for a handle in the current context."""

    __slots__ = ("_handle",)

    def __init__(self, handle: Handle) -> None:
        object.__setattr__(self, "_handle", handle)

    def __repr__(self) -> str:
        return f"<context value for {get_handle_name(self._handle)!r}>"

    def __getattr__(self, name: str) -> Any:
        return getattr(_current(self._handle), name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(_current(self._handle), name, value)


def _current(handle: Handle) -> Any:
    bound = _bound_values.get()
    if not bound:
        msg = (
            f"Context handle {handle!r} was accessed outside of an active context. "
            "Wrap the work in AsyncContext.scope() or AsyncContext.run_with_context()."
        )
        raise DIHandleContextError(msg)
    if handle not in bound:
        msg = f"Context handle {handle!r} has no value bound in the current context."
        raise DIHandleContextError(msg)
    return bound[handle]


class AsyncContext:
    """Bind values to handles for the duration of a (possibly async) call."""

    def __init__(self, container: Container) -> None:
        self._container = container
        self._registered: set[Handle] = set()

    def _bind(self, handle: Any) -> Handle:
        handle = ensure_handle(handle)
        if handle not in self._registered:
            proxy = _ContextProxy(handle)
            self._container.register(handle, lambda: proxy, lifecycle=Lifecycle.SINGLETON)
            self._registered.add(handle)
        return handle

    @contextmanager
    def scope(self, handle: Any, value: Any) -> Iterator[None]:
        """Bind ``value`` to ``handle`` inside the block, restoring the previous binding after it."""
        handle = self._bind(handle)
        token = _bound_values.set({**_bound_values.get(), handle: value})
        try:
            yield
        finally:
            _bound_values.reset(token)

    def run_with_context(self, handle: Any, value: Any, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Call ``fn`` with ``value`` bound to ``handle``.

        Coroutine functions return an awaitable that binds the value inside the
        awaiting task, so the binding covers everything the coroutine awaits.
        """
        if inspect.iscoroutinefunction(fn):
            return self._run_async(handle, value, fn, args, kwargs)
        with self.scope(handle, value):
            return fn(*args, **kwargs)

    async def _run_async(
        self,
        handle: Any,
        value: Any,
        fn: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> Any:
        with self.scope(handle, value):
            return await fn(*args, **kwargs)
