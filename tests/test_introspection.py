from dihandle.container import Container
from dihandle.handles import create_handle
from dihandle.introspection import introspect_container
from dihandle.lifecycle import Lifecycle


class Database:
    pass


class Repository:
    def __init__(self, db: Database) -> None:
        self.db = db


def test_empty_container_snapshot() -> None:
    container = Container(metadata={"name": "Empty"})

    snapshot = introspect_container(container)

    assert snapshot.metadata == {"name": "Empty"}
    assert snapshot.parents_count == 0
    assert snapshot.handles == ()


def test_snapshot_lists_registrations_in_order(container: Container) -> None:
    db = create_handle("db", {"description": "Primary database"})
    repository = create_handle("repository")
    container.register(db, Database)
    container.register(repository, Repository, db, lifecycle=Lifecycle.TRANSIENT)

    snapshot = introspect_container(container)

    assert [item.name for item in snapshot.handles] == ["db", "repository"]
    assert snapshot.handles[0].metadata == {"description": "Primary database"}
    assert snapshot.handles[0].lifecycle is Lifecycle.SINGLETON
    assert snapshot.handles[1].lifecycle is Lifecycle.TRANSIENT


def test_snapshot_does_not_resolve(container: Container) -> None:
    db = create_handle("db")
    container.register(db, Database)

    snapshot = introspect_container(container)

    assert snapshot.find(db).has_instance is False
    assert snapshot.find(db).is_resolving is False


def test_snapshot_reports_dependency_edges(container: Container) -> None:
    db = create_handle("db")
    repository = create_handle("repository")
    container.register(db, Database)
    container.register(repository, Repository, db)
    container.resolve(repository)

    snapshot = introspect_container(container)

    db_snapshot = snapshot.find(db)
    repository_snapshot = snapshot.find(repository)
    assert db_snapshot.has_instance is True
    assert db_snapshot.dependents == (repository,)
    assert db_snapshot.dependencies == ()
    assert repository_snapshot.dependencies == (db,)
    assert repository_snapshot.dependents == ()


def test_snapshot_is_immutable_view(container: Container) -> None:
    db = create_handle("db")
    container.register(db, Database)
    before = introspect_container(container)

    container.resolve(db)

    assert before.find(db).has_instance is False
    assert introspect_container(container).find(db).has_instance is True


def test_find_unknown_handle(container: Container) -> None:
    assert introspect_container(container).find(create_handle()) is None


def test_child_snapshot_lists_only_own_registrations() -> None:
    shared = create_handle("shared")
    parent = Container()
    parent.register(shared, Database)
    child = Container(parent)

    snapshot = introspect_container(child)

    assert snapshot.parents_count == 1
    assert snapshot.handles == ()


def test_declared_edges_are_reported_before_resolution(container: Container) -> None:
    db = create_handle("db")
    repository = create_handle("repository")
    container.register(db, Database)
    container.register(repository, Repository, db)

    snapshot = introspect_container(container)

    assert snapshot.find(repository).declared_dependencies == (db,)
    assert snapshot.find(db).declared_dependents == (repository,)
    assert snapshot.find(repository).dependencies == ()
    assert snapshot.find(db).has_instance is False


def test_declared_dependencies_skip_plain_values(container: Container) -> None:
    db = create_handle("db")
    url = create_handle("url")
    container.register(db, Database)
    container.register(url, lambda _, scheme: scheme, db, "https")

    assert introspect_container(container).find(url).declared_dependencies == (db,)


def test_factory_name(container: Container) -> None:
    db = create_handle("db")
    session = create_handle("session")
    container.register(db, Database)
    container.register(session, lambda: None)

    snapshot = introspect_container(container)

    assert snapshot.find(db).factory_name == "Database"
    assert snapshot.find(session).factory_name == "<lambda>"


def test_unregistered_dependencies_are_listed() -> None:
    settings = create_handle("settings")
    service = create_handle("service")
    parent = Container()
    parent.register(settings, dict)
    child = Container(parent)
    child.register(service, Repository, settings)

    snapshot = introspect_container(child)

    assert snapshot.unregistered_dependencies == (settings,)
    assert snapshot.find(service).declared_dependencies == (settings,)
