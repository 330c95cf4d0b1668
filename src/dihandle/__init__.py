from dihandle.async_context import AsyncContext
from dihandle.collection_handle import CollectionHandle, create_collection_handle
from dihandle.container import Container, create_container, get_container_metadata
from dihandle.exceptions import (
    DIHandleAsyncDependencyInSyncContextError,
    DIHandleCircularDependencyError,
    DIHandleConstructionError,
    DIHandleContextError,
    DIHandleDisposeError,
    DIHandleError,
    DIHandleInvalidHandleError,
    DIHandleInvalidRegistrationError,
    DIHandleNotRegisteredError,
    DIHandleUnresolvedError,
)
from dihandle.handles import (
    Handle,
    create_handle,
    get_handle_id,
    get_handle_metadata,
    get_handle_name,
    is_handle,
)
from dihandle.introspection import ContainerSnapshot, HandleSnapshot, introspect_container
from dihandle.lifecycle import Lifecycle, RegistrationOptions

__all__ = [
    "AsyncContext",
    "CollectionHandle",
    "Container",
    "ContainerSnapshot",
    "DIHandleAsyncDependencyInSyncContextError",
    "DIHandleCircularDependencyError",
    "DIHandleConstructionError",
    "DIHandleContextError",
    "DIHandleDisposeError",
    "DIHandleError",
    "DIHandleInvalidHandleError",
    "DIHandleInvalidRegistrationError",
    "DIHandleNotRegisteredError",
    "DIHandleUnresolvedError",
    "Handle",
    "HandleSnapshot",
    "Lifecycle",
    "RegistrationOptions",
    "create_collection_handle",
    "create_container",
    "create_handle",
    "get_container_metadata",
    "get_handle_id",
    "get_handle_metadata",
    "get_handle_name",
    "introspect_container",
    "is_handle",
]
