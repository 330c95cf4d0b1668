import pytest

from dihandle import exceptions
from dihandle.exceptions import (
    DIHandleCircularDependencyError,
    DIHandleDisposeError,
    DIHandleError,
    DIHandleUnresolvedError,
)
from dihandle.handles import create_handle

ERROR_TYPES = [
    exceptions.DIHandleInvalidHandleError,
    exceptions.DIHandleInvalidRegistrationError,
    exceptions.DIHandleUnresolvedError,
    exceptions.DIHandleNotRegisteredError,
    exceptions.DIHandleAsyncDependencyInSyncContextError,
    exceptions.DIHandleConstructionError,
    exceptions.DIHandleDisposeError,
    exceptions.DIHandleContextError,
    exceptions.DIHandleCircularDependencyError,
]


@pytest.mark.parametrize("error_type", ERROR_TYPES)
def test_errors_share_base_class(error_type: type[Exception]) -> None:
    assert issubclass(error_type, DIHandleError)
    assert error_type.__doc__


def test_circular_dependency_is_an_unresolved_error() -> None:
    handle = create_handle("cyclic")

    error = DIHandleCircularDependencyError(handle, "cycle")

    assert isinstance(error, DIHandleUnresolvedError)
    assert error.handle is handle
    assert str(error) == "cycle"


def test_dispose_error_keeps_failures() -> None:
    failures = [RuntimeError("a"), ValueError("b")]

    error = DIHandleDisposeError("2 failed", failures)

    assert error.errors == tuple(failures)
    assert str(error) == "2 failed"
