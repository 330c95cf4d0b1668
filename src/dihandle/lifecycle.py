from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeAlias

LifecycleHook: TypeAlias = Callable[[Any], Any] | str
"""A callable taking the instance (or no arguments), or the name of a zero-argument method on it."""


class Lifecycle(str, Enum):
    """Defines how long a resolved instance is reused."""

    SINGLETON = "singleton"
    """A single instance is created and reused until its handle is invalidated."""

    TRANSIENT = "transient"
    """A new instance is created every time the handle is resolved."""


@dataclass(frozen=True, slots=True)
class RegistrationOptions:
    """Registration options passed as the last positional argument of ``register``.

    Keyword arguments of ``Container.register`` are the usual way to set these;
    this object exists for call sites that build registrations generically.
    """

    lifecycle: Lifecycle | None = None
    initialize: LifecycleHook | None = None
    dispose: LifecycleHook | None = None
