from __future__ import annotations

import pytest

from conftest import FakeDriver
from graph_memory.knowledge_graph import (
    Entity,
    EntityNotFound,
    KnowledgeGraphManager,
    Neo4jConfig,
    Neo4jGraphStore,
    ObservationAddition,
    Relation,
    SearchOptions,
)
from graph_memory.knowledge_graph.neo4j_store import quote_rel_type


def _store(driver: FakeDriver, database: str = "neo4j") -> Neo4jGraphStore:
    return Neo4jGraphStore(Neo4jConfig(uri="bolt://db:7687", user="neo4j", password="pw", database=database), driver)


def test_quote_rel_type_escapes_backticks():
    assert quote_rel_type("KNOWS") == "`KNOWS`"
    assert quote_rel_type("works at") == "`works at`"
    assert quote_rel_type("a`b") == "`a``b`"


def test_sessions_use_configured_database():
    driver = FakeDriver(lambda q, p: [{"name": p["name"], "entityType": p["entityType"], "observations": p["observations"]}])
    _store(driver, database="memories").create_entities([Entity("A", "t", ["x"])])
    assert driver.databases == ["memories"]
    assert driver.sessions_closed == 1


def test_create_entities_merges_on_name():
    driver = FakeDriver(
        lambda q, p: [{"name": p["name"], "entityType": p["entityType"], "observations": p["observations"]}]
    )
    out = _store(driver).create_entities([Entity("A", "person", ["x", "x", "y"])])

    query, params = driver.calls[0]
    assert "MERGE (e:Entity {name: $name})" in query
    assert params["observations"] == ["x", "y"]
    assert out == [Entity("A", "person", ["x", "y"])]


def test_create_relations_reports_only_new_edges(caplog):
    def respond(query, params):
        if params["target"] == "Ghost":
            return []
        return [{"created": params["target"] == "B"}]

    driver = FakeDriver(respond)
    with caplog.at_level("WARNING"):
        created = _store(driver).create_relations(
            [Relation("A", "B", "works with"), Relation("A", "C", "knows"), Relation("A", "Ghost", "knows")]
        )

    assert created == [Relation("A", "B", "works with")]
    assert "[existing:`works with`]" in driver.calls[0][0]
    assert "Skipping relation creation" in caplog.text


def test_add_observations_missing_entity_raises():
    driver = FakeDriver(lambda q, p: [{"added": ["o2"]}] if p["name"] == "A" else [])
    store = _store(driver)

    assert store.add_observations([ObservationAddition("A", ["o2"])])[0].added_observations == ["o2"]
    with pytest.raises(EntityNotFound) as exc:
        store.add_observations([ObservationAddition("Ghost", ["o"])])
    assert exc.value.data == {"entityName": "Ghost", "backend": "neo4j"}


def test_read_graph_pages_by_name():
    def respond(query, params):
        if "SKIP $offset LIMIT $limit" in query:
            return [{"name": "B", "entityType": "t", "observations": None}]
        if "from.name IN $names" in query:
            return [{"source": "B", "target": "B", "relationType": "self"}]
        return []

    driver = FakeDriver(respond)
    graph = _store(driver).read_graph(limit=1, offset=1)

    assert driver.calls[0][1] == {"offset": 1, "limit": 1}
    assert graph.entities == [Entity("B", "t", [])]
    assert graph.relations == [Relation("B", "B", "self")]
    assert driver.calls[1][1] == {"names": ["B"]}


def test_search_nodes_passes_term_parameter():
    driver = FakeDriver(lambda q, p: [])
    graph = _store(driver).search_nodes("tea")
    assert graph.entities == []
    assert driver.calls[0][1] == {"term": "tea"}
    # No relation query when nothing matched.
    assert len(driver.calls) == 1


def test_search_with_relationships_counts_caps_and_dedupes():
    def respond(query, params):
        if "RETURN count(e) AS total" in query:
            return [{"total": 42}]
        if "LIMIT $maxEntities" in query:
            assert params["maxEntities"] == 2
            return [
                {"name": "A", "entityType": "t", "observations": []},
                {"name": "B", "entityType": "t", "observations": []},
            ]
        if "primaryEntity" in query:
            assert params["maxPerEntity"] == 1
            return [
                {
                    "primaryEntity": "A",
                    "limitedRels": [{"source": "A", "target": "B", "relationType": "knows"}],
                    "totalRels": 3,
                },
                {
                    "primaryEntity": "B",
                    "limitedRels": [{"source": "A", "target": "B", "relationType": "knows"}],
                    "totalRels": 1,
                },
            ]
        return []

    driver = FakeDriver(respond)
    result = _store(driver).search_with_relationships(
        "t", SearchOptions(max_entities=2, max_relationships_per_entity=1)
    )

    assert [e.name for e in result.entities] == ["A", "B"]
    assert result.relations == [Relation("A", "B", "knows")]
    assert result.metadata.to_dict() == {
        "totalEntitiesFound": 42,
        "relationshipsLimited": True,
        "backendUsed": "neo4j",
    }


def test_graph_summary():
    def respond(query, params):
        if "count(e)" in query:
            return [{"count": 3}]
        if "count(r)" in query:
            return [{"count": 2}]
        return [{"entityType": "company"}, {"entityType": "person"}, {"entityType": None}]

    summary = _store(FakeDriver(respond)).get_graph_summary()
    assert summary.to_dict() == {"entityCount": 3, "relationCount": 2, "entityTypes": ["company", "person"]}


def test_ensure_schema_creates_constraint_and_index():
    driver = FakeDriver()
    _store(driver).ensure_schema()
    statements = [q for q, _ in driver.calls]
    assert any("entity_name_unique" in q for q in statements)
    assert any("entity_type_index" in q for q in statements)


def test_driver_error_demotes_to_file_store(file_store):
    def respond(query, params):
        raise ConnectionError("ServiceUnavailable")

    driver = FakeDriver(respond)
    m = KnowledgeGraphManager(file_store, _store(driver))

    created = m.create_entities([Entity("A", "t", ["o"])])

    assert created == [Entity("A", "t", ["o"])]
    assert m.get_storage_status().connection_health == "degraded"
    assert file_store.load().find_entity("A") is not None
    calls = len(driver.calls)
    m.read_graph()
    assert len(driver.calls) == calls


def test_sessions_close_when_a_statement_fails():
    def respond(query, params):
        raise ConnectionError("ServiceUnavailable")

    driver = FakeDriver(respond)
    with pytest.raises(ConnectionError):
        _store(driver).create_entities([Entity("A", "t", [])])

    assert len(driver.databases) == 1
    assert driver.sessions_closed == len(driver.databases)


def test_sessions_close_when_entity_is_missing():
    driver = FakeDriver(lambda q, p: [])
    with pytest.raises(EntityNotFound):
        _store(driver).add_observations([ObservationAddition("Ghost", ["o"])])

    assert len(driver.databases) == 1
    assert driver.sessions_closed == len(driver.databases)


def test_sessions_close_on_demotion(file_store):
    def respond(query, params):
        raise ConnectionError("ServiceUnavailable")

    driver = FakeDriver(respond)
    m = KnowledgeGraphManager(file_store, _store(driver))
    m.search_nodes("tea")

    assert m.orchestrator.primary_available is False
    assert driver.sessions_closed == len(driver.databases) == 1
