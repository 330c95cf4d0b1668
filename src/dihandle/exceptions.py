from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class DIHandleError(Exception):
    """Represent a base class for all dihandle-specific failures.

    Catch this type when you want to handle any dihandle error path without
    matching each concrete exception class individually.
    """


class DIHandleInvalidHandleError(DIHandleError):
    """Signal that an object not created by ``create_handle`` was used as a handle.

    Raised by ``Container.register``, ``Container.resolve``, ``Container.has``,
    ``Container.unregister`` and the handle introspection helpers.

    Typical fix is creating keys with ``create_handle`` or
    ``create_collection_handle`` and passing those objects around.
    """


class DIHandleInvalidRegistrationError(DIHandleError):
    """Signal invalid registration arguments.

    Raised by ``Container.register`` when the factory is not callable, when a
    lifecycle hook is neither a callable nor a method name, or when options are
    passed both as a ``RegistrationOptions`` object and as keywords.
    """


class DIHandleUnresolvedError(DIHandleError):
    """Signal access to a handle that no container has registered.

    Raised by attribute access, calls, and other forwarded operations on a
    handle before ``Container.register`` was called for it, or after it was
    unregistered.
    """

    def __init__(self, handle: Any, message: str) -> None:
        super().__init__(message)
        self.handle = handle


class DIHandleNotRegisteredError(DIHandleError):
    """Signal that ``resolve`` was called for a handle without a registration.

    Neither the container nor any of its parents hold a registration for the
    handle. Typical fix is registering the handle on the container (or on one
    of its parents) before resolving it.
    """

    def __init__(self, handle: Any, message: str) -> None:
        super().__init__(message)
        self.handle = handle


class DIHandleAsyncDependencyInSyncContextError(DIHandleError):
    """Signal synchronous use of a resolution that can only complete asynchronously.

    Raised when an async factory or hook has to be scheduled but no event loop
    is running, and by forwarded operations that need the live instance right
    away (attribute assignment, ``len``, iteration, calls) while the handle's
    resolution is still pending.

    Typical fix is running inside an event loop and awaiting
    ``container.resolve(handle)`` before using the handle synchronously.
    """


class DIHandleConstructionError(DIHandleError):
    """Signal that constructor dependency auto-detection did not converge.

    Raised when a class resolved through ``Container.resolve(cls)`` still
    dereferences a pending handle after its async dependencies were awaited,
    which happens with transient async dependencies.
    """


class DIHandleDisposeError(DIHandleError):
    """Aggregate dispose hook failures raised by ``Container.dispose``.

    Every hook runs and the container is cleared before this error is raised.
    The individual failures are available in ``errors``.
    """

    def __init__(self, message: str, errors: Sequence[BaseException]) -> None:
        super().__init__(message)
        self.errors = tuple(errors)


class DIHandleContextError(DIHandleError):
    """Signal access to an async-context handle without a bound value.

    Raised when the handle is used outside ``AsyncContext.scope`` /
    ``AsyncContext.run_with_context``, or before a value was bound for it in the
    current context.
    """


class DIHandleCircularDependencyError(DIHandleUnresolvedError):
    """Signal that a handle was dereferenced while its own resolution is running.

    A dependency cycle is resolved by handing the handle itself to the other
    members of the cycle. Members may keep the handle and use it later, but
    dereferencing it inside a factory or constructor that is still part of the
    cycle cannot succeed.
    """
