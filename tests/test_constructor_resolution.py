import asyncio
from typing import Any

import pytest

from dihandle.container import Container
from dihandle.exceptions import DIHandleConstructionError
from dihandle.handles import create_handle
from dihandle.introspection import introspect_container
from dihandle.lifecycle import Lifecycle


class Logger:
    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix

    def log(self, message: str) -> str:
        return f"{self.prefix}{message}"


logger: Logger = create_handle("logger")
settings: dict[str, Any] = create_handle("settings")


class ServiceWithDefault:
    def __init__(self, log: Logger = logger) -> None:
        self.log = log

    def work(self) -> str:
        return self.log.log("working")


class ServiceReadingInConstructor:
    def __init__(self) -> None:
        self.prefix = logger.prefix


class ServiceStoringHandle:
    def __init__(self) -> None:
        self.settings = settings


class PlainService:
    def __init__(self) -> None:
        self.value = 42


async def create_logger() -> Logger:
    await asyncio.sleep(0)
    return Logger("[async] ")


def test_plain_class_is_constructed(container: Container) -> None:
    instance = container.resolve(PlainService)

    assert isinstance(instance, PlainService)
    assert instance.value == 42


def test_each_resolve_constructs_a_new_instance(container: Container) -> None:
    assert container.resolve(PlainService) is not container.resolve(PlainService)


def test_handle_parameter_default(container: Container) -> None:
    container.register(logger, Logger, "[LOG] ")

    instance = container.resolve(ServiceWithDefault)

    assert instance.work() == "[LOG] working"


def test_handle_dereferenced_in_constructor(container: Container) -> None:
    container.register(logger, Logger, "[LOG] ")

    instance = container.resolve(ServiceReadingInConstructor)

    assert instance.prefix == "[LOG] "


def test_handle_stored_on_instance(container: Container) -> None:
    container.register(settings, lambda: {"debug": True})

    instance = container.resolve(ServiceStoringHandle)

    assert instance.settings["debug"] is True
    assert introspect_container(container).find(settings).has_instance is True


def test_unregistered_stored_handle_is_left_for_later(container: Container) -> None:
    options = create_handle("options")

    class Service:
        def __init__(self) -> None:
            self.options = options

    instance = container.resolve(Service)

    container.register(options, lambda: {"debug": False})

    assert instance.options["debug"] is False


def test_handle_registered_in_another_container_is_used() -> None:
    other = Container()
    other.register(logger, Logger, "[other] ")

    instance = Container().resolve(ServiceReadingInConstructor)

    assert instance.prefix == "[other] "


def test_registered_class_without_dependencies_is_auto_detected(container: Container) -> None:
    service = create_handle("service")
    container.register(logger, Logger, "[LOG] ")
    container.register(service, ServiceWithDefault)
    first = container.resolve(service)

    container.register(logger, Logger, "[NEW] ")

    second = container.resolve(service)
    assert second is not first
    assert second.work() == "[NEW] working"


async def test_async_default_handle_is_awaited(container: Container) -> None:
    container.register(logger, create_logger)

    result = container.resolve(ServiceWithDefault)

    assert isinstance(result, asyncio.Task)
    instance = await result
    assert instance.work() == "[async] working"


async def test_constructor_is_rerun_after_async_dependency_settles(container: Container) -> None:
    calls = {"count": 0}

    class Counting:
        def __init__(self) -> None:
            calls["count"] += 1
            self.prefix = logger.prefix

    container.register(logger, create_logger)

    instance = await container.resolve(Counting)

    assert instance.prefix == "[async] "
    assert calls["count"] == 2


async def test_settled_dependencies_construct_synchronously(container: Container) -> None:
    container.register(logger, create_logger)
    await container.resolve(logger)

    instance = container.resolve(ServiceReadingInConstructor)

    assert instance.prefix == "[async] "


async def test_transient_async_dependency_does_not_converge(container: Container) -> None:
    container.register(logger, create_logger, lifecycle=Lifecycle.TRANSIENT)

    with pytest.raises(DIHandleConstructionError):
        await container.resolve(ServiceReadingInConstructor)
    # Let the resolution started by the last attempt finish.
    await asyncio.sleep(0)
    await asyncio.sleep(0)


class SlottedService:
    __slots__ = ("log",)

    def __init__(self) -> None:
        self.log = logger


class PrivateSlotService:
    __slots__ = ("__log",)

    def __init__(self) -> None:
        self.__log = logger

    def work(self) -> str:
        return self.__log.log("working")


def test_handle_stored_in_slot(container: Container) -> None:
    container.register(logger, Logger, "[slot] ")

    instance = container.resolve(SlottedService)

    assert introspect_container(container).find(logger).has_instance is True
    assert instance.log.log("x") == "[slot] x"


async def test_async_handle_stored_in_slot_is_awaited(container: Container) -> None:
    container.register(logger, create_logger)

    result = container.resolve(SlottedService)

    assert isinstance(result, asyncio.Task)
    await result
    assert introspect_container(container).find(logger).has_instance is True


async def test_async_handle_stored_in_private_slot_is_awaited(container: Container) -> None:
    container.register(logger, create_logger)

    instance = await container.resolve(PrivateSlotService)

    assert instance.work() == "[async] working"
