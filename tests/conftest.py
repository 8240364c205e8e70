"""Shared fixtures: file-backed stores, fake stores and a fake Neo4j driver."""
from __future__ import annotations

from typing import Any, Callable

import pytest

from graph_memory.knowledge_graph import Entity, FileGraphStore, KnowledgeGraphManager, Relation


class FakeResult:
    def __init__(self, records: list[dict[str, Any]]):
        self._records = records

    def __iter__(self):
        return iter(self._records)

    def single(self):
        return self._records[0] if self._records else None


class FakeTx:
    def __init__(self, driver: "FakeDriver"):
        self.driver = driver

    def run(self, query: str, **params: Any) -> FakeResult:
        self.driver.calls.append((query, params))
        return FakeResult(self.driver.responder(query, params))


class FakeSession:
    def __init__(self, driver: "FakeDriver", database: str | None):
        self.driver = driver
        self.database = database

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.driver.sessions_closed += 1
        return False

    def execute_write(self, fn, *args):
        return fn(FakeTx(self.driver), *args)

    def execute_read(self, fn, *args):
        return fn(FakeTx(self.driver), *args)

    def run(self, query: str, **params: Any) -> FakeResult:
        return FakeTx(self.driver).run(query, **params)


class FakeDriver:
    """Records every Cypher statement; `responder(query, params)` returns records."""

    def __init__(self, responder: Callable[[str, dict[str, Any]], list[dict[str, Any]]] | None = None):
        self.responder = responder or (lambda _q, _p: [])
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.databases: list[str | None] = []
        self.sessions_closed = 0
        self.closed = False
        self.connectivity_error: Exception | None = None

    def session(self, database: str | None = None) -> FakeSession:
        self.databases.append(database)
        return FakeSession(self, database)

    def verify_connectivity(self) -> None:
        if self.connectivity_error is not None:
            raise self.connectivity_error

    def close(self) -> None:
        self.closed = True


class FakePrimary:
    """A primary store that delegates to a file store until told to fail."""

    backend_name = "neo4j"

    def __init__(self, inner: FileGraphStore, *, fail_with: Exception | None = None):
        self.inner = inner
        self.fail_with = fail_with
        self.calls: list[str] = []
        self.closed = False
        self.schema_ensured = False
        self.connectivity_error: Exception | None = None

    def verify_connectivity(self) -> None:
        if self.connectivity_error is not None:
            raise self.connectivity_error

    def ensure_schema(self) -> None:
        self.schema_ensured = True

    def close(self) -> None:
        self.closed = True

    def __getattr__(self, name: str):
        method = getattr(self.inner, name)

        def call(*args, **kwargs):
            self.calls.append(name)
            if self.fail_with is not None:
                raise self.fail_with
            return method(*args, **kwargs)

        return call


@pytest.fixture
def fake_driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def file_store(tmp_path) -> FileGraphStore:
    return FileGraphStore(tmp_path / "memory.jsonl")


@pytest.fixture
def manager(file_store) -> KnowledgeGraphManager:
    m = KnowledgeGraphManager(file_store)
    yield m
    m.close()


@pytest.fixture
def seeded_store(file_store) -> FileGraphStore:
    file_store.create_entities(
        [
            Entity("Alice", "person", ["likes tea"]),
            Entity("Bob", "person", ["works at Acme"]),
            Entity("Acme", "company", ["makes anvils"]),
            Entity("Carol", "person", []),
        ]
    )
    file_store.create_relations(
        [
            Relation("Alice", "Bob", "knows"),
            Relation("Bob", "Acme", "works_at"),
            Relation("Carol", "Alice", "knows"),
        ]
    )
    return file_store
