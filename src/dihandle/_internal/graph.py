from __future__ import annotations

from collections.abc import Iterator
from typing import Any


class DependencyGraph:
    """Track which handles depend on which, in both directions.

    ``dependencies`` maps a handle to the handles it used while being resolved;
    ``dependents`` is its exact inverse. Both maps are always updated together.
    Keys are handles, which hash by identity.
    """

    __slots__ = ("_dependencies", "_dependents")

    def __init__(self) -> None:
        self._dependencies: dict[Any, set[Any]] = {}
        self._dependents: dict[Any, set[Any]] = {}

    def add_edge(self, dependent: Any, dependency: Any) -> None:
        """Record that ``dependent`` depends on ``dependency``."""
        if dependent is dependency:
            return
        self._dependencies.setdefault(dependent, set()).add(dependency)
        self._dependents.setdefault(dependency, set()).add(dependent)

    def dependencies_of(self, handle: Any) -> frozenset[Any]:
        return frozenset(self._dependencies.get(handle, ()))

    def dependents_of(self, handle: Any) -> frozenset[Any]:
        return frozenset(self._dependents.get(handle, ()))

    def has_dependents(self, handle: Any) -> bool:
        return bool(self._dependents.get(handle))

    def clear_dependencies(self, handle: Any) -> None:
        """Drop the forward edges of ``handle`` and every edge pointing at it."""
        for dependency in self._dependencies.pop(handle, ()):
            dependents = self._dependents.get(dependency)
            if dependents is None:
                continue
            dependents.discard(handle)
            if not dependents:
                del self._dependents[dependency]

        for dependent in self._dependents.pop(handle, ()):
            dependencies = self._dependencies.get(dependent)
            if dependencies is None:
                continue
            dependencies.discard(handle)
            if not dependencies:
                del self._dependencies[dependent]

    def clear(self) -> None:
        self._dependencies.clear()
        self._dependents.clear()

    def edges(self) -> Iterator[tuple[Any, Any]]:
        """Yield ``(dependent, dependency)`` pairs."""
        for dependent, dependencies in self._dependencies.items():
            for dependency in dependencies:
                yield dependent, dependency
