from __future__ import annotations

import asyncio
import inspect
import logging
import weakref
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import TracebackType
from typing import Any, TypeVar, overload

from typing_extensions import Self

from dihandle._internal.deferred import (
    Pending,
    _DeferralSignal,
    is_deferred,
    run_detached,
    schedule,
    settle,
)
from dihandle._internal.graph import DependencyGraph
from dihandle._internal.resolution_context import record_access, recording, tracking
from dihandle.exceptions import (
    DIHandleAsyncDependencyInSyncContextError,
    DIHandleConstructionError,
    DIHandleDisposeError,
    DIHandleInvalidHandleError,
    DIHandleInvalidRegistrationError,
    DIHandleNotRegisteredError,
)
from dihandle.handles import Handle, attach_owner, detach_owner, ensure_handle, is_handle, owner_of
from dihandle.lifecycle import Lifecycle, LifecycleHook, RegistrationOptions

T = TypeVar("T")

logger = logging.getLogger(__name__)
_NOT_CONSTRUCTED = object()


@dataclass(slots=True, kw_only=True)
class Registration:
    """Binding of a handle to its factory plus the state of its last resolution."""

    factory: Callable[..., Any]
    dependencies: tuple[Any, ...]
    lifecycle: Lifecycle
    initialize: LifecycleHook | None = None
    dispose: LifecycleHook | None = None

    instance: Any = None
    has_instance: bool = False
    resolving: bool = False
    pending: Pending | None = None
    generation: int = 0


class Container:
    """Register factories against handles and resolve them into instances.

    A container is an independent namespace. Handles it does not hold are looked
    up in its parents, the last listed parent winning. Every resolution records
    which handles were used to build which, so re-registering a handle
    invalidates the cached instances of everything built on top of it, in this
    container and in its children.

    Resolution is synchronous until a factory returns a coroutine or future, an
    ``initialize`` hook returns an awaitable, or a dependency is pending. From
    that point ``resolve`` returns an ``asyncio.Task`` that completes with the
    instance, and singleton resolutions overlapping with it share that task.
    """

    def __init__(
        self,
        *parents: Container,
        metadata: Mapping[str, Any] | None = None,
        default_lifecycle: Lifecycle = Lifecycle.SINGLETON,
    ) -> None:
        """Initialize a container.

        Args:
            *parents: Containers consulted for handles not registered here.
            metadata: Optional annotations exposed to introspection. The
                mapping is copied.
            default_lifecycle: Lifecycle used by registrations that omit one.

        """
        for parent in parents:
            if not isinstance(parent, Container):
                msg = f"Parent containers must be Container instances, got {parent!r}."
                raise TypeError(msg)

        self._parents: tuple[Container, ...] = parents
        self._metadata = dict(metadata) if metadata is not None else None
        self._default_lifecycle = Lifecycle(default_lifecycle)
        self._registrations: dict[Handle, Registration] = {}
        self._graph = DependencyGraph()
        self._children: weakref.WeakSet[Container] = weakref.WeakSet()

        for parent in parents:
            parent._children.add(self)

    def __repr__(self) -> str:
        name = (self._metadata or {}).get("name")
        label = f" {name!r}" if name is not None else ""
        return f"<Container{label} registrations={len(self._registrations)}>"

    @property
    def metadata(self) -> dict[str, Any] | None:
        return self._metadata

    @property
    def parents(self) -> tuple[Container, ...]:
        return self._parents

    # region Registration

    def register(
        self,
        handle: Any,
        factory: Callable[..., Any],
        *dependencies: Any,
        lifecycle: Lifecycle | str | None = None,
        initialize: LifecycleHook | None = None,
        dispose: LifecycleHook | None = None,
    ) -> None:
        """Bind ``factory`` and its dependencies to ``handle``.

        Dependencies are passed to the factory positionally, in order. Handles
        among them are resolved first; any other value is passed as is. A class
        registered without dependencies is constructed with constructor
        auto-detection, like ``resolve(cls)``.

        If the handle was registered before, or instances in this container were
        built from it, the cached instance is disposed and every dependent is
        invalidated before the new registration takes effect.

        A callable hook receives the instance when it accepts a positional
        argument and is called without arguments otherwise. A string names a
        method of the instance.

        Args:
            handle: Handle created by ``create_handle``.
            factory: Class, function, or coroutine function producing the
                instance.
            *dependencies: Values or handles passed to the factory. The last one
                may be a ``RegistrationOptions`` instead of keyword options.
            lifecycle: ``Lifecycle.SINGLETON`` or ``Lifecycle.TRANSIENT``.
                Defaults to the container's ``default_lifecycle``.
            initialize: Hook run on every new instance before it is returned.
            dispose: Hook run on a cached instance when it is invalidated or the
                container is disposed.

        Raises:
            DIHandleInvalidHandleError: If ``handle`` is not a handle.
            DIHandleInvalidRegistrationError: If the factory is not callable, a
                hook is neither callable nor a method name, the lifecycle is
                unknown, or options are given both ways.

        """
        handle = ensure_handle(handle)
        if not callable(factory):
            msg = f"Factory for {handle!r} must be callable, got {factory!r}."
            raise DIHandleInvalidRegistrationError(msg)

        if dependencies and isinstance(dependencies[-1], RegistrationOptions):
            if lifecycle is not None or initialize is not None or dispose is not None:
                msg = f"Registration options for {handle!r} were passed both as RegistrationOptions and as keywords."
                raise DIHandleInvalidRegistrationError(msg)
            options = dependencies[-1]
            dependencies = dependencies[:-1]
            lifecycle, initialize, dispose = options.lifecycle, options.initialize, options.dispose

        for hook in (initialize, dispose):
            if hook is not None and not callable(hook) and not isinstance(hook, str):
                msg = f"Lifecycle hook for {handle!r} must be a callable or a method name, got {hook!r}."
                raise DIHandleInvalidRegistrationError(msg)

        try:
            resolved_lifecycle = self._default_lifecycle if lifecycle is None else Lifecycle(lifecycle)
        except ValueError:
            msg = f"Unknown lifecycle {lifecycle!r} for {handle!r}."
            raise DIHandleInvalidRegistrationError(msg) from None

        if handle in self._registrations or self._graph.has_dependents(handle):
            logger.debug("Re-registering %r; invalidating its dependents", handle)
            self._invalidate(handle)
        else:
            logger.debug("Registering %r", handle)

        self._registrations[handle] = Registration(
            factory=factory,
            dependencies=dependencies,
            lifecycle=resolved_lifecycle,
            initialize=initialize,
            dispose=dispose,
        )
        attach_owner(handle, self)

    def has(self, handle: Any) -> bool:
        """Return whether the handle is registered here or in any parent."""
        handle = ensure_handle(handle)
        if handle in self._registrations:
            return True
        return any(parent.has(handle) for parent in self._parents)

    def unregister(self, handle: Any) -> None:
        """Invalidate the handle and its dependents, then drop its registration."""
        handle = ensure_handle(handle)
        self._invalidate(handle)
        if self._registrations.pop(handle, None) is not None:
            logger.debug("Unregistered %r", handle)
        self._graph.clear_dependencies(handle)
        detach_owner(handle, self)

    def clear(self) -> None:
        """Drop every registration and dependency edge without running dispose hooks."""
        for handle in self._registrations:
            detach_owner(handle, self)
        self._registrations.clear()
        self._graph.clear()

    async def dispose(self) -> None:
        """Run the dispose hook of every cached singleton, then clear the container.

        Async hooks are awaited together. Every hook runs even when some fail.

        Raises:
            DIHandleDisposeError: If any hook failed. The container is already
                cleared at that point; the failures are in ``errors``.

        """
        errors: list[BaseException] = []
        awaiting: list[Any] = []

        for handle, registration in list(self._registrations.items()):
            if not registration.has_instance or registration.dispose is None:
                continue
            instance = registration.instance
            registration.instance = None
            registration.has_instance = False
            try:
                outcome = self._call_hook(instance, registration.dispose)
            except Exception as error:  # noqa: BLE001
                logger.debug("Dispose hook of %r failed", handle, exc_info=error)
                errors.append(error)
                continue
            if inspect.isawaitable(outcome):
                awaiting.append(outcome)

        self.clear()

        if awaiting:
            results = await asyncio.gather(*awaiting, return_exceptions=True)
            errors.extend(result for result in results if isinstance(result, BaseException))

        logger.debug("Disposed %r", self)
        if errors:
            msg = f"{len(errors)} dispose hook(s) failed while disposing {self!r}."
            raise DIHandleDisposeError(msg, errors)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.dispose()

    # endregion Registration

    # region Resolution

    @overload
    def resolve(self, target: type[T]) -> T | asyncio.Future[T]: ...

    @overload
    def resolve(self, target: Any) -> Any: ...

    def resolve(self, target: Any) -> Any:
        """Resolve a handle, or construct a class whose constructor uses handles.

        For a handle, the registration is looked up here and then in the
        parents. For a class, the class is constructed with its default
        arguments; handles it dereferences, takes as parameter defaults, or
        stores on the instance are resolved, and if any of them resolves
        asynchronously the class is constructed again once they are ready.
        Constructors used this way may run twice and must not have side effects
        beyond capturing handles.

        Returns:
            The instance, or an ``asyncio.Task`` completing with it when the
            resolution has to finish asynchronously.

        Raises:
            DIHandleNotRegisteredError: If the handle is not registered here or
                in any parent.
            DIHandleInvalidHandleError: If ``target`` is neither a handle nor a
                class.
            DIHandleAsyncDependencyInSyncContextError: If the resolution needs
                to await something and no event loop is running.

        """
        if is_handle(target):
            record_access(target)
            value = self._resolve_handle(target)
        elif inspect.isclass(target):
            value = self._construct(target)
        else:
            msg = f"Cannot resolve {target!r}: expected a handle or a class."
            raise DIHandleInvalidHandleError(msg)
        return value.task if isinstance(value, Pending) else value

    def _resolve_handle(self, handle: Handle) -> Any:
        registration = self._registrations.get(handle)
        if registration is None:
            for parent in reversed(self._parents):
                if parent.has(handle):
                    return parent._resolve_handle(handle)
            msg = f"Handle {handle!r} is not registered. Call container.register() first."
            raise DIHandleNotRegisteredError(handle, msg)

        if registration.has_instance:
            return registration.instance

        if registration.resolving:
            if registration.pending is not None:
                return registration.pending
            # Cycle: the handle forwards to the instance once it exists.
            return handle

        registration.resolving = True
        generation = registration.generation
        try:
            with tracking(self, handle):
                arguments = [self._resolve_dependency(dependency) for dependency in registration.dependencies]
                if any(isinstance(argument, Pending) for argument in arguments):
                    return self._defer(
                        handle,
                        registration,
                        self._resolve_later(handle, registration, arguments, generation),
                    )
                product = self._instantiate(registration.factory, arguments)
                return self._complete(handle, registration, product, generation)
        except BaseException:
            registration.resolving = False
            raise

    def _resolve_dependency(self, dependency: Any) -> Any:
        if not is_handle(dependency):
            return dependency
        record_access(dependency)
        return self._resolve_handle(dependency)

    def _instantiate(self, factory: Callable[..., Any], arguments: list[Any]) -> Any:
        if inspect.isclass(factory) and not arguments:
            return self._construct(factory)
        return factory(*arguments)

    def _complete(self, handle: Handle, registration: Registration, product: Any, generation: int) -> Any:
        if is_deferred(product):
            return self._defer_closing(
                handle,
                registration,
                self._finish_later(handle, registration, product, generation),
                product,
            )

        initializing = self._call_hook(product, registration.initialize)
        if inspect.isawaitable(initializing):
            return self._defer_closing(
                handle,
                registration,
                self._finish_later(handle, registration, product, generation, initializing),
                initializing,
            )

        return self._store(handle, registration, product, generation)

    def _defer(self, handle: Handle, registration: Registration, coroutine: Any) -> Pending:
        pending = schedule(coroutine, description=f"Resolving {handle!r}")
        if registration.lifecycle is Lifecycle.SINGLETON:
            registration.pending = pending
        else:
            registration.resolving = False
        return pending

    def _defer_closing(self, handle: Handle, registration: Registration, coroutine: Any, inner: Any) -> Pending:
        try:
            return self._defer(handle, registration, coroutine)
        except DIHandleAsyncDependencyInSyncContextError:
            if inspect.iscoroutine(inner):
                inner.close()
            raise

    async def _resolve_later(
        self,
        handle: Handle,
        registration: Registration,
        arguments: list[Any],
        generation: int,
    ) -> Any:
        try:
            settled = await asyncio.gather(*(settle(argument) for argument in arguments))
            with tracking(self, handle):
                product = self._instantiate(registration.factory, list(settled))
        except BaseException:
            self._release(registration, generation)
            raise
        return await self._finish_later(handle, registration, product, generation)

    async def _finish_later(
        self,
        handle: Handle,
        registration: Registration,
        product: Any,
        generation: int,
        initializing: Any = None,
    ) -> Any:
        try:
            instance = await settle(product)
            if initializing is None:
                with tracking(self, handle):
                    initializing = self._call_hook(instance, registration.initialize)
            if inspect.isawaitable(initializing):
                await initializing
        except BaseException:
            self._release(registration, generation)
            raise
        return self._store(handle, registration, instance, generation)

    def _store(self, handle: Handle, registration: Registration, instance: Any, generation: int) -> Any:
        self._release(registration, generation)
        if registration.lifecycle is Lifecycle.TRANSIENT:
            return instance

        if self._registrations.get(handle) is not registration or registration.generation != generation:
            logger.debug("Discarding stale instance of %r: it was invalidated while resolving", handle)
            self._dispose_quietly(handle, registration.dispose, instance)
            return instance

        registration.instance = instance
        registration.has_instance = True
        return instance

    @staticmethod
    def _release(registration: Registration, generation: int) -> None:
        if registration.generation != generation:
            return
        registration.resolving = False
        registration.pending = None

    # endregion Resolution

    # region Constructor auto-detection

    def _construct(self, cls: type[Any]) -> Any:
        pending: list[Pending] = []
        instance: Any = _NOT_CONSTRUCTED

        with recording() as accessed:
            try:
                instance = cls()
            except _DeferralSignal as signal:
                pending.append(signal.pending)

        candidates = [*accessed, *_default_handles(cls)]
        if instance is not _NOT_CONSTRUCTED:
            candidates.extend(_stored_handles(instance))

        for candidate in dict.fromkeys(candidates):
            value = self._resolve_candidate(candidate)
            if isinstance(value, Pending):
                pending.append(value)

        if not pending:
            return instance
        return schedule(self._construct_later(cls, pending), description=f"Constructing {cls.__qualname__}")

    def _resolve_candidate(self, handle: Handle) -> Any:
        if self.has(handle):
            record_access(handle)
            return self._resolve_handle(handle)
        owner = owner_of(handle)
        if owner is not None and owner.has(handle):
            record_access(handle)
            return owner._resolve_handle(handle)
        # Unregistered handles kept for later use are resolved when first used.
        return None

    async def _construct_later(self, cls: type[Any], pending: list[Pending]) -> Any:
        await asyncio.gather(*(item.task for item in pending))
        with recording():
            try:
                return cls()
            except _DeferralSignal:
                msg = (
                    f"{cls.__qualname__} still depends on a pending handle after its async "
                    "dependencies settled. Handles used by auto-detected constructors must "
                    "resolve to cached singletons."
                )
                raise DIHandleConstructionError(msg) from None

    # endregion Constructor auto-detection

    # region Invalidation

    def _invalidate(self, *roots: Handle, inherited: Iterable[Handle] = ()) -> None:
        visited: dict[Handle, None] = {}
        stack = list(roots)
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited[current] = None
            registration = self._registrations.get(current)
            if registration is not None:
                self._evict(current, registration)
            stack.extend(self._graph.dependents_of(current))

        # Edges are dropped only after the whole cascade saw them.
        for current in visited:
            self._graph.clear_dependencies(current)

        if len(visited) > len(roots):
            logger.debug("Invalidated %d handle(s) depending on %r", len(visited) - len(roots), roots)

        changed = {**dict.fromkeys(inherited), **visited}
        for child in list(self._children):
            child._invalidate_from_parent(changed)

    def _invalidate_from_parent(self, handles: Iterable[Handle]) -> None:
        # Handles registered here shadow the parent's and stop the cascade.
        inherited = [handle for handle in handles if handle not in self._registrations]
        if not inherited:
            return
        roots = [handle for handle in inherited if self._graph.has_dependents(handle)]
        self._invalidate(*roots, inherited=inherited)

    def _evict(self, handle: Handle, registration: Registration) -> None:
        if registration.pending is not None:
            registration.resolving = False
            registration.pending = None
        registration.generation += 1
        if not registration.has_instance:
            return
        instance = registration.instance
        self._dispose_quietly(handle, registration.dispose, instance)
        registration.instance = None
        registration.has_instance = False

    def _dispose_quietly(self, handle: Handle, hook: LifecycleHook | None, instance: Any) -> None:
        if hook is None:
            return
        try:
            outcome = self._call_hook(instance, hook)
        except Exception:
            logger.exception("Error in dispose hook of %r", handle)
            return
        if inspect.isawaitable(outcome):
            run_detached(outcome, description=f"dispose hook of {handle!r}")

    # endregion Invalidation

    @staticmethod
    def _call_hook(instance: Any, hook: LifecycleHook | None) -> Any:
        if hook is None:
            return None
        if isinstance(hook, str):
            return getattr(instance, hook)()
        if _takes_instance(hook):
            return hook(instance)
        return hook()


def create_container(*parents: Container | Mapping[str, Any], metadata: Mapping[str, Any] | None = None) -> Container:
    """Create a container, optionally with metadata and parent containers.

    Metadata can be given as keyword or as a leading mapping::

        app = create_container(metadata={"name": "app"})
        request = create_container({"name": "request"}, app)

    """
    if parents and isinstance(parents[0], Mapping):
        if metadata is not None:
            msg = "Container metadata was given both positionally and as a keyword."
            raise TypeError(msg)
        metadata, parents = parents[0], parents[1:]
    return Container(*parents, metadata=metadata)  # type: ignore[arg-type]


def get_container_metadata(container: Container) -> dict[str, Any] | None:
    return container.metadata


def _default_handles(cls: type[Any]) -> list[Handle]:
    try:
        parameters = inspect.signature(cls).parameters.values()
    except (TypeError, ValueError):
        return []
    return [parameter.default for parameter in parameters if is_handle(parameter.default)]


def _stored_handles(instance: Any) -> list[Handle]:
    values: list[Any] = []
    attributes = getattr(instance, "__dict__", None)
    if isinstance(attributes, dict):
        values.extend(attributes.values())
    for name in _slot_names(type(instance)):
        values.append(getattr(instance, name, None))
    return [value for value in values if is_handle(value)]


def _slot_names(cls: type[Any]) -> list[str]:
    names: list[str] = []
    for klass in cls.__mro__:
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for slot in slots:
            if slot in ("__dict__", "__weakref__"):
                continue
            # Private slots are stored under their mangled name.
            if slot.startswith("__") and not slot.endswith("__"):
                slot = f"_{klass.__name__.lstrip('_')}{slot}"
            names.append(slot)
    return names


def _takes_instance(hook: Callable[..., Any]) -> bool:
    try:
        parameters = inspect.signature(hook).parameters.values()
    except (TypeError, ValueError):
        return True
    return any(
        parameter.kind
        in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        )
        for parameter in parameters
    )
