"""Read-only snapshots of container state for diagnostics and visualizers."""

from __future__ import annotations

import functools
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from dihandle.container import Container
from dihandle.handles import Handle, get_handle_metadata, get_handle_name, is_handle
from dihandle.lifecycle import Lifecycle


@dataclass(frozen=True, slots=True)
class HandleSnapshot:
    """State of one registration at the time of the snapshot."""

    handle: Handle
    name: str
    metadata: dict[str, Any] | None
    factory_name: str
    lifecycle: Lifecycle
    has_instance: bool
    is_resolving: bool
    declared_dependencies: tuple[Handle, ...]
    """Handles passed to ``register`` as dependencies, in order."""
    declared_dependents: tuple[Handle, ...]
    """Handles registered in this container that declare this one as a dependency."""
    dependencies: tuple[Handle, ...]
    """Handles this one used the last time it was resolved."""
    dependents: tuple[Handle, ...]
    """Handles resolved in this container that used this one."""


@dataclass(frozen=True, slots=True)
class ContainerSnapshot:
    metadata: dict[str, Any] | None
    parents_count: int
    handles: tuple[HandleSnapshot, ...]
    unregistered_dependencies: tuple[Handle, ...]
    """Declared dependencies without a registration in this container, such as handles held by a parent."""

    def find(self, handle: Handle) -> HandleSnapshot | None:
        for snapshot in self.handles:
            if snapshot.handle is handle:
                return snapshot
        return None


def introspect_container(container: Container) -> ContainerSnapshot:
    """Describe the registrations of ``container`` without resolving anything.

    Only registrations held by the container itself are listed, in registration
    order. Declared edges come from the dependencies given to ``register``;
    runtime edges are listed for handles resolved by this container.
    """
    graph = container._graph  # noqa: SLF001
    registrations = container._registrations  # noqa: SLF001

    declared = {
        handle: tuple(dict.fromkeys(dependency for dependency in registration.dependencies if is_handle(dependency)))
        for handle, registration in registrations.items()
    }
    declared_dependents: dict[Handle, list[Handle]] = {}
    for handle, dependencies in declared.items():
        for dependency in dependencies:
            declared_dependents.setdefault(dependency, []).append(handle)

    handles = tuple(
        HandleSnapshot(
            handle=handle,
            name=get_handle_name(handle),
            metadata=get_handle_metadata(handle),
            factory_name=_factory_name(registration.factory),
            lifecycle=registration.lifecycle,
            has_instance=registration.has_instance,
            is_resolving=registration.resolving,
            declared_dependencies=declared[handle],
            declared_dependents=tuple(declared_dependents.get(handle, ())),
            dependencies=_ordered(graph.dependencies_of(handle)),
            dependents=_ordered(graph.dependents_of(handle)),
        )
        for handle, registration in registrations.items()
    )
    unregistered = tuple(dependency for dependency in declared_dependents if dependency not in registrations)
    return ContainerSnapshot(
        metadata=container.metadata,
        parents_count=len(container.parents),
        handles=handles,
        unregistered_dependencies=unregistered,
    )


def _factory_name(factory: Callable[..., Any]) -> str:
    name = getattr(factory, "__name__", None)
    if isinstance(name, str):
        return name
    if isinstance(factory, functools.partial):
        return _factory_name(factory.func)
    return type(factory).__name__


def _ordered(handles: frozenset[Handle]) -> tuple[Handle, ...]:
    return tuple(sorted(handles, key=lambda handle: handle._handle_id))  # noqa: SLF001
