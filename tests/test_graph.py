from dihandle._internal.graph import DependencyGraph
from dihandle.handles import create_handle


def test_add_edge_updates_both_directions() -> None:
    graph = DependencyGraph()
    service = create_handle("service")
    logger = create_handle("logger")

    graph.add_edge(service, logger)

    assert graph.dependencies_of(service) == {logger}
    assert graph.dependents_of(logger) == {service}
    assert graph.has_dependents(logger)
    assert not graph.has_dependents(service)


def test_self_edges_are_ignored() -> None:
    graph = DependencyGraph()
    handle = create_handle()

    graph.add_edge(handle, handle)

    assert list(graph.edges()) == []


def test_duplicate_edges_are_stored_once() -> None:
    graph = DependencyGraph()
    a = create_handle("a")
    b = create_handle("b")

    graph.add_edge(a, b)
    graph.add_edge(a, b)

    assert list(graph.edges()) == [(a, b)]


def test_clear_dependencies_removes_edges_in_both_directions() -> None:
    graph = DependencyGraph()
    a = create_handle("a")
    b = create_handle("b")
    c = create_handle("c")
    graph.add_edge(a, b)
    graph.add_edge(b, c)

    graph.clear_dependencies(b)

    assert graph.dependencies_of(a) == frozenset()
    assert graph.dependents_of(c) == frozenset()
    assert not graph.has_dependents(b)
    assert list(graph.edges()) == []


def test_clear_dependencies_keeps_unrelated_edges() -> None:
    graph = DependencyGraph()
    a = create_handle("a")
    b = create_handle("b")
    c = create_handle("c")
    graph.add_edge(a, c)
    graph.add_edge(b, c)

    graph.clear_dependencies(a)

    assert graph.dependents_of(c) == {b}
    assert list(graph.edges()) == [(b, c)]


def test_queries_for_unknown_handles() -> None:
    graph = DependencyGraph()
    handle = create_handle()

    assert graph.dependencies_of(handle) == frozenset()
    assert graph.dependents_of(handle) == frozenset()
    graph.clear_dependencies(handle)


def test_clear() -> None:
    graph = DependencyGraph()
    graph.add_edge(create_handle(), create_handle())

    graph.clear()

    assert list(graph.edges()) == []
