"""Handles: registration keys that forward to the instance registered for them.

A handle carries no data of its own. Attribute reads and writes, calls,
indexing, iteration and membership tests are forwarded to the instance the
owning container resolves for it, so a handle can be passed around in place of
the object it stands for::

    logger: Logger = create_handle("logger")
    container.register(logger, ConsoleLogger)

    logger.info("ready")  # resolved on first use

Identity and metadata are read with the module-level helpers (``is_handle``,
``get_handle_name``, ``get_handle_metadata``) so that no attribute name is taken
away from the forwarded instance.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from dihandle._internal.deferred import Pending, _DeferralSignal, schedule, settle
from dihandle._internal.resolution_context import (
    is_recording,
    record_access,
    record_constructor_access,
)
from dihandle.exceptions import (
    DIHandleAsyncDependencyInSyncContextError,
    DIHandleCircularDependencyError,
    DIHandleInvalidHandleError,
    DIHandleUnresolvedError,
)

_ids = itertools.count(1)


def _is_dunder(name: str) -> bool:
    return name.startswith("__") and name.endswith("__")


class Handle:
    """Opaque key and forwarding surface for an instance registered in a container.

    Handles compare and hash by identity. Dunder attributes are never forwarded,
    so protocol lookups such as ``copy.copy`` or ``inspect`` do not trigger
    resolution.
    """

    __slots__ = ("__weakref__", "_handle_id", "_handle_metadata", "_handle_name", "_handle_owner")

    _handle_id: int
    _handle_name: str
    _handle_metadata: dict[str, Any] | None
    _handle_owner: Any

    def __init__(self, name: str, metadata: Mapping[str, Any] | None = None) -> None:
        object.__setattr__(self, "_handle_id", next(_ids))
        object.__setattr__(self, "_handle_name", name)
        object.__setattr__(self, "_handle_metadata", dict(metadata) if metadata is not None else None)
        object.__setattr__(self, "_handle_owner", None)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._handle_name!r}>"

    def __bool__(self) -> bool:
        return True

    def __getattr__(self, name: str) -> Any:
        if _is_dunder(name):
            raise AttributeError(name)
        return _forward(self, lambda instance: getattr(instance, name))

    def __setattr__(self, name: str, value: Any) -> None:
        if name in Handle.__slots__ or _is_dunder(name):
            object.__setattr__(self, name, value)
            return
        setattr(require_ready(self, f"setting {name!r} on"), name, value)

    def __delattr__(self, name: str) -> None:
        if name in Handle.__slots__ or _is_dunder(name):
            object.__delattr__(self, name)
            return
        delattr(require_ready(self, f"deleting {name!r} from"), name)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return _forward(self, lambda instance: instance(*args, **kwargs))

    def __getitem__(self, key: Any) -> Any:
        return _forward(self, lambda instance: instance[key])

    def __setitem__(self, key: Any, value: Any) -> None:
        require_ready(self, "assigning an item on")[key] = value

    def __delitem__(self, key: Any) -> None:
        del require_ready(self, "deleting an item from")[key]

    def __len__(self) -> int:
        return len(require_ready(self, "taking the length of"))

    def __iter__(self) -> Iterator[Any]:
        return iter(require_ready(self, "iterating over"))

    def __contains__(self, item: Any) -> bool:
        return item in require_ready(self, "testing membership in")


def create_handle(name: str = "handle", metadata: Mapping[str, Any] | None = None) -> Any:
    """Create a new handle.

    The return type is ``Any`` so the handle can be annotated with the interface
    it stands for, e.g. ``logger: Logger = create_handle("logger")``.

    Args:
        name: Human-readable name used in ``repr`` and error messages.
        metadata: Optional annotations (``name``, ``description``, or any other
            key) exposed to introspection. The mapping is copied.

    """
    return Handle(name, metadata)


def is_handle(value: object) -> bool:
    return isinstance(value, Handle)


def ensure_handle(value: object) -> Handle:
    if not isinstance(value, Handle):
        msg = f"Invalid handle: {value!r} was not created with create_handle() or create_collection_handle()."
        raise DIHandleInvalidHandleError(msg)
    return value


def get_handle_id(handle: object) -> int:
    return ensure_handle(handle)._handle_id  # noqa: SLF001


def get_handle_name(handle: object) -> str:
    return ensure_handle(handle)._handle_name  # noqa: SLF001


def get_handle_metadata(handle: object) -> dict[str, Any] | None:
    """Return the metadata given to ``create_handle``, or ``None`` when there was none."""
    return ensure_handle(handle)._handle_metadata  # noqa: SLF001


def attach_owner(handle: Handle, container: Any) -> None:
    """Make ``container`` the target of the handle's forwarded accesses."""
    object.__setattr__(handle, "_handle_owner", container)


def detach_owner(handle: Handle, container: Any) -> None:
    if handle._handle_owner is container:  # noqa: SLF001
        object.__setattr__(handle, "_handle_owner", None)


def owner_of(handle: Handle) -> Any:
    return handle._handle_owner  # noqa: SLF001


def current_value(handle: Handle) -> Any:
    """Resolve ``handle`` through its owner for a forwarded access.

    Returns the live instance, or ``Pending`` when the resolution has to finish
    asynchronously. Inside constructor auto-detection a pending resolution
    raises the deferral signal instead, aborting the constructor.

    Raises:
        DIHandleUnresolvedError: If no container has the handle registered.
        DIHandleCircularDependencyError: If the handle is dereferenced while
            its own resolution is still running.

    """
    record_constructor_access(handle)

    owner = handle._handle_owner  # noqa: SLF001
    if owner is None or not owner.has(handle):
        msg = f"Handle {handle!r} is not resolved. Register it with a container before using it."
        raise DIHandleUnresolvedError(handle, msg)

    record_access(handle)
    value = owner._resolve_handle(handle)  # noqa: SLF001

    if value is handle:
        msg = (
            f"Handle {handle!r} was dereferenced while it is still being resolved. "
            "Keep the handle in the cyclic dependency and use it after resolution finished."
        )
        raise DIHandleCircularDependencyError(handle, msg)

    if isinstance(value, Pending) and is_recording():
        raise _DeferralSignal(value)

    return value


def _forward(handle: Handle, operation: Callable[[Any], Any]) -> Any:
    value = current_value(handle)
    if isinstance(value, Pending):
        return schedule(_forward_when_ready(value, operation), description=repr(handle)).task
    return operation(value)


async def _forward_when_ready(pending: Pending, operation: Callable[[Any], Any]) -> Any:
    instance = await settle(pending)
    return operation(instance)


def require_ready(handle: Handle, action: str) -> Any:
    value = current_value(handle)
    if isinstance(value, Pending):
        msg = f"Cannot complete {action} {handle!r} while its resolution is pending. Await container.resolve() first."
        raise DIHandleAsyncDependencyInSyncContextError(msg)
    return value
