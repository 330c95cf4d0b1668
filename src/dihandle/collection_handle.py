from __future__ import annotations

import functools
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from typing_extensions import Self

from dihandle.exceptions import DIHandleUnresolvedError
from dihandle.handles import Handle, owner_of, require_ready


class CollectionHandle(Handle):
    """Handle for an ordered collection that is replaced, never mutated in place.

    Reads (``len``, iteration, indexing, ``in``, ``index``, ``count``...) go to
    the current list. Every mutating method builds a new list and re-registers
    the handle with a factory returning it, which invalidates everything that
    was built from the previous list. Dependents therefore observe either the
    old snapshot or the new one, never a half-applied change.

    The handle must be registered (for example ``container.register(items, list)``)
    before it is read or mutated.
    """

    __slots__ = ()

    def __bool__(self) -> bool:
        return bool(require_ready(self, "testing the truthiness of"))

    def append(self, item: Any) -> None:
        self._replace([*self._snapshot(), item])

    def extend(self, items: Iterable[Any]) -> None:
        self._replace([*self._snapshot(), *items])

    def insert(self, index: int, item: Any) -> None:
        items = self._snapshot()
        items.insert(index, item)
        self._replace(items)

    def pop(self, index: int = -1) -> Any:
        """Remove and return the item at ``index`` (the last one by default).

        Raises:
            IndexError: If the collection is empty or the index is out of range.

        """
        items = self._snapshot()
        if not items:
            msg = f"pop from empty collection {self!r}"
            raise IndexError(msg)
        item = items.pop(index)
        self._replace(items)
        return item

    def popleft(self) -> Any:
        return self.pop(0)

    def remove(self, value: Any) -> None:
        items = self._snapshot()
        items.remove(value)
        self._replace(items)

    def splice(self, start: int, delete_count: int | None = None, *items: Any) -> list[Any]:
        """Remove ``delete_count`` items from ``start`` and insert ``items`` there.

        Without ``delete_count`` everything from ``start`` to the end is removed
        and ``items`` are ignored. A negative ``start`` counts from the end.

        Returns:
            The removed items.

        """
        current = self._snapshot()
        size = len(current)
        start = max(size + start, 0) if start < 0 else min(start, size)
        if delete_count is None:
            removed = current[start:]
            del current[start:]
        else:
            stop = start + max(0, min(delete_count, size - start))
            removed = current[start:stop]
            current[start:stop] = items
        self._replace(current)
        return removed

    def reverse(self) -> None:
        self._replace(self._snapshot()[::-1])

    def sort(self, *, key: Callable[[Any], Any] | None = None, reverse: bool = False) -> None:
        self._replace(sorted(self._snapshot(), key=key, reverse=reverse))  # type: ignore[type-var]

    def clear(self) -> None:
        self._replace([])

    def __setitem__(self, key: Any, value: Any) -> None:
        items = self._snapshot()
        items[key] = value
        self._replace(items)

    def __delitem__(self, key: Any) -> None:
        items = self._snapshot()
        del items[key]
        self._replace(items)

    def __iadd__(self, items: Iterable[Any]) -> Self:
        self.extend(items)
        return self

    def _snapshot(self) -> list[Any]:
        return list(require_ready(self, "mutating"))

    def _replace(self, items: list[Any]) -> None:
        owner = owner_of(self)
        registration = owner._registrations.get(self) if owner is not None else None  # noqa: SLF001
        if registration is None:
            msg = f"Collection handle {self!r} must be registered with a container before it is mutated."
            raise DIHandleUnresolvedError(self, msg)
        owner.register(
            self,
            functools.partial(list, items),
            lifecycle=registration.lifecycle,
            initialize=registration.initialize,
            dispose=registration.dispose,
        )


def create_collection_handle(name: str = "collection", metadata: Mapping[str, Any] | None = None) -> Any:
    """Create a handle for an ordered collection, see ``CollectionHandle``."""
    return CollectionHandle(name, metadata)
