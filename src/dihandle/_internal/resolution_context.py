from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

# Frames are (container, handle) pairs. The stack is an immutable tuple so that
# tasks created mid-resolution keep their own snapshot of it.
_tracking_stack: ContextVar[tuple[tuple[Any, Any], ...]] = ContextVar(
    "dihandle_tracking_stack",
    default=(),
)

# Handles dereferenced while a constructor is being auto-detected.
_recorded_accesses: ContextVar[list[Any] | None] = ContextVar(
    "dihandle_recorded_accesses",
    default=None,
)


@contextmanager
def tracking(container: Any, handle: Any) -> Iterator[None]:
    """Attribute handle accesses to ``handle`` for the duration of the block.

    Entering a frame also suspends access recording: a constructor being
    auto-detected only records the handles it dereferences itself, not the ones
    used by the factories those handles run.
    """
    stack_token = _tracking_stack.set((*_tracking_stack.get(), (container, handle)))
    recording_token = _recorded_accesses.set(None)
    try:
        yield
    finally:
        _recorded_accesses.reset(recording_token)
        _tracking_stack.reset(stack_token)


def record_access(handle: Any) -> None:
    """Record an edge from the handle being resolved to ``handle``."""
    stack = _tracking_stack.get()
    if not stack:
        return
    container, current = stack[-1]
    container._graph.add_edge(current, handle)  # noqa: SLF001


@contextmanager
def recording() -> Iterator[list[Any]]:
    """Collect handles dereferenced inside the block into the yielded list."""
    accessed: list[Any] = []
    token = _recorded_accesses.set(accessed)
    try:
        yield accessed
    finally:
        _recorded_accesses.reset(token)


def is_recording() -> bool:
    return _recorded_accesses.get() is not None


def record_constructor_access(handle: Any) -> None:
    accessed = _recorded_accesses.get()
    if accessed is not None:
        accessed.append(handle)
