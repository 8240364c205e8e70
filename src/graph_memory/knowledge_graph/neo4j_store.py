from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from .errors import EntityNotFound
from .models import (
    BackendName,
    Entity,
    GraphSummary,
    KnowledgeGraph,
    ObservationAddition,
    ObservationDeletion,
    ObservationResult,
    Relation,
    SearchMetadata,
    SearchOptions,
    SearchResult,
    unique_in_order,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MATCH_ENTITY = """
MATCH (e:Entity)
WHERE toLower(e.name) CONTAINS toLower($term)
   OR toLower(e.entityType) CONTAINS toLower($term)
   OR any(obs IN coalesce(e.observations, []) WHERE toLower(obs) CONTAINS toLower($term))
"""

_INDUCED_RELATIONS = """
MATCH (from:Entity)-[r]->(to:Entity)
WHERE from.name IN $names AND to.name IN $names
RETURN from.name AS source, to.name AS target, type(r) AS relationType
ORDER BY source, relationType, target
"""


def quote_rel_type(rel_type: str) -> str:
    """Relationship types cannot be parameterized; quote as an identifier."""
    return "`" + rel_type.replace("`", "``") + "`"


def _entity(record: Any) -> Entity:
    return Entity(
        name=record["name"],
        entity_type=record["entityType"] or "",
        observations=list(record["observations"] or []),
    )


def _relation(record: Any) -> Relation:
    return Relation(source=record["source"], target=record["target"], relation_type=record["relationType"])


@dataclass(slots=True)
class Neo4jConfig:
    uri: str
    user: str
    password: str
    database: str = "neo4j"


class Neo4jGraphStore:
    """Neo4j-backed graph store.

    Entities are `(:Entity {name, entityType, observations})` nodes with a
    uniqueness constraint on `name`; relations are typed relationships
    between them. Every public call opens one session, runs a single managed
    transaction and closes the session on the way out.

    Dependency: neo4j>=5.
    """

    backend_name: BackendName = "neo4j"

    def __init__(self, cfg: Neo4jConfig, driver: Any | None = None):
        self.cfg = cfg
        if driver is None:
            from neo4j import GraphDatabase

            # Driver is thread-safe; sessions are lightweight.
            driver = GraphDatabase.driver(cfg.uri, auth=(cfg.user, cfg.password))
        self._driver = driver

    def close(self) -> None:
        self._driver.close()

    def verify_connectivity(self) -> None:
        self._driver.verify_connectivity()

    def ensure_schema(self) -> None:
        stmts = [
            "CREATE CONSTRAINT entity_name_unique IF NOT EXISTS FOR (e:Entity) REQUIRE e.name IS UNIQUE",
            "CREATE INDEX entity_type_index IF NOT EXISTS FOR (e:Entity) ON (e.entityType)",
        ]
        with self._driver.session(database=self.cfg.database) as s:
            for q in stmts:
                s.run(q)
        logger.info("Ensured Neo4j constraints and indexes exist")

    def run_write(self, fn: Callable[..., T], *args: Any) -> T:
        with self._driver.session(database=self.cfg.database) as s:
            return s.execute_write(fn, *args)

    def run_read(self, fn: Callable[..., T], *args: Any) -> T:
        with self._driver.session(database=self.cfg.database) as s:
            return s.execute_read(fn, *args)

    # --- writes ---

    def create_entities(self, entities: list[Entity]) -> list[Entity]:
        return self.run_write(self._create_entities_tx, entities)

    @staticmethod
    def _create_entities_tx(tx, entities: list[Entity]) -> list[Entity]:
        q = """
        MERGE (e:Entity {name: $name})
        ON CREATE SET e.entityType = $entityType, e.observations = $observations
        ON MATCH SET e.entityType = $entityType,
                     e.observations = coalesce(e.observations, [])
                        + [obs IN $observations WHERE NOT obs IN coalesce(e.observations, [])]
        RETURN e.name AS name, e.entityType AS entityType, e.observations AS observations
        """
        out: list[Entity] = []
        for entity in entities:
            record = tx.run(
                q,
                name=entity.name,
                entityType=entity.entity_type,
                observations=unique_in_order(entity.observations),
            ).single()
            if record is not None:
                out.append(_entity(record))
        return out

    def create_relations(self, relations: list[Relation]) -> list[Relation]:
        return self.run_write(self._create_relations_tx, relations)

    @staticmethod
    def _create_relations_tx(tx, relations: list[Relation]) -> list[Relation]:
        created: list[Relation] = []
        for rel in relations:
            rel_type = quote_rel_type(rel.relation_type)
            q = f"""
            MATCH (from:Entity {{name: $source}}), (to:Entity {{name: $target}})
            OPTIONAL MATCH (from)-[existing:{rel_type}]->(to)
            WITH from, to, count(existing) AS matches
            FOREACH (ignored IN CASE WHEN matches = 0 THEN [1] ELSE [] END |
                CREATE (from)-[:{rel_type} {{created: timestamp()}}]->(to))
            RETURN matches = 0 AS created
            """
            record = tx.run(q, source=rel.source, target=rel.target).single()
            if record is None:
                logger.warning(
                    "Skipping relation creation: entity %s or %s not found", rel.source, rel.target
                )
                continue
            if record["created"]:
                created.append(rel)
        return created

    def add_observations(self, additions: list[ObservationAddition]) -> list[ObservationResult]:
        return self.run_write(self._add_observations_tx, additions)

    def _add_observations_tx(self, tx, additions: list[ObservationAddition]) -> list[ObservationResult]:
        q = """
        MATCH (e:Entity {name: $name})
        WITH e, [c IN $contents WHERE NOT c IN coalesce(e.observations, [])] AS added
        SET e.observations = coalesce(e.observations, []) + added
        RETURN added
        """
        results: list[ObservationResult] = []
        for add in additions:
            record = tx.run(q, name=add.entity_name, contents=unique_in_order(add.contents)).single()
            if record is None:
                raise EntityNotFound(add.entity_name, backend=self.backend_name)
            results.append(ObservationResult(entity_name=add.entity_name, added_observations=list(record["added"])))
        return results

    def delete_entities(self, names: list[str]) -> None:
        self.run_write(self._delete_entities_tx, names)

    @staticmethod
    def _delete_entities_tx(tx, names: list[str]) -> None:
        tx.run("MATCH (e:Entity) WHERE e.name IN $names DETACH DELETE e", names=names)

    def delete_observations(self, deletions: list[ObservationDeletion]) -> None:
        self.run_write(self._delete_observations_tx, deletions)

    @staticmethod
    def _delete_observations_tx(tx, deletions: list[ObservationDeletion]) -> None:
        q = """
        MATCH (e:Entity {name: $name})
        SET e.observations = [obs IN coalesce(e.observations, []) WHERE NOT obs IN $drop]
        """
        for d in deletions:
            tx.run(q, name=d.entity_name, drop=d.observations)

    def delete_relations(self, relations: list[Relation]) -> None:
        self.run_write(self._delete_relations_tx, relations)

    @staticmethod
    def _delete_relations_tx(tx, relations: list[Relation]) -> None:
        for rel in relations:
            q = f"""
            MATCH (from:Entity {{name: $source}})-[r:{quote_rel_type(rel.relation_type)}]->(to:Entity {{name: $target}})
            DELETE r
            """
            tx.run(q, source=rel.source, target=rel.target)

    # --- reads ---

    def read_graph(self, limit: int | None = None, offset: int | None = None) -> KnowledgeGraph:
        return self.run_read(self._read_graph_tx, limit, offset)

    @staticmethod
    def _read_graph_tx(tx, limit: int | None, offset: int | None) -> KnowledgeGraph:
        q = "MATCH (e:Entity) RETURN e.name AS name, e.entityType AS entityType, e.observations AS observations"
        if limit is not None:
            # Paged reads return the subgraph induced by the page only.
            q += " ORDER BY name SKIP $offset LIMIT $limit"
            entities = [_entity(r) for r in tx.run(q, offset=offset or 0, limit=limit)]
            names = [e.name for e in entities]
            relations = [_relation(r) for r in tx.run(_INDUCED_RELATIONS, names=names)] if names else []
            return KnowledgeGraph(entities=entities, relations=relations)

        entities = [_entity(r) for r in tx.run(q)]
        relations = [
            _relation(r)
            for r in tx.run(
                "MATCH (from:Entity)-[r]->(to:Entity) "
                "RETURN from.name AS source, to.name AS target, type(r) AS relationType"
            )
        ]
        return KnowledgeGraph(entities=entities, relations=relations)

    def search_nodes(self, query: str) -> KnowledgeGraph:
        return self.run_read(self._search_nodes_tx, query)

    @staticmethod
    def _search_nodes_tx(tx, query: str) -> KnowledgeGraph:
        logger.info("Executing Neo4j search for query %r", query)
        q = _MATCH_ENTITY + "RETURN e.name AS name, e.entityType AS entityType, e.observations AS observations"
        entities = [_entity(r) for r in tx.run(q, term=query)]
        names = [e.name for e in entities]
        relations = [_relation(r) for r in tx.run(_INDUCED_RELATIONS, names=names)] if names else []
        logger.info("Neo4j search found %d entities and %d relations", len(entities), len(relations))
        return KnowledgeGraph(entities=entities, relations=relations)

    def search_with_relationships(self, query: str, options: SearchOptions) -> SearchResult:
        return self.run_read(self._search_with_relationships_tx, query, options)

    @staticmethod
    def _search_with_relationships_tx(tx, query: str, options: SearchOptions) -> SearchResult:
        logger.info("Executing Neo4j bounded search for query %r", query)
        total = tx.run(_MATCH_ENTITY + "RETURN count(e) AS total", term=query).single()["total"]
        q = (
            _MATCH_ENTITY
            + "RETURN e.name AS name, e.entityType AS entityType, e.observations AS observations "
            + "ORDER BY name LIMIT $maxEntities"
        )
        entities = [_entity(r) for r in tx.run(q, term=query, maxEntities=options.max_entities)]

        relations: list[Relation] = []
        limited = False
        if entities:
            names = [e.name for e in entities]
            # Relations with both ends matched belong to their source's group.
            rel_q = """
            MATCH (from:Entity)-[r]->(to:Entity)
            WHERE from.name IN $names OR to.name IN $names
            WITH from, to, r,
                 CASE WHEN from.name IN $names THEN from.name ELSE to.name END AS primaryEntity
            ORDER BY primaryEntity, from.name, type(r), to.name
            WITH primaryEntity, collect({source: from.name, target: to.name, relationType: type(r)}) AS rels
            RETURN primaryEntity, rels[0..$maxPerEntity] AS limitedRels, size(rels) AS totalRels
            ORDER BY primaryEntity
            """
            seen: set[tuple[str, str, str]] = set()
            for record in tx.run(rel_q, names=names, maxPerEntity=options.max_relationships_per_entity):
                if record["totalRels"] > options.max_relationships_per_entity:
                    limited = True
                for raw in record["limitedRels"]:
                    rel = _relation(raw)
                    if rel.key in seen:
                        continue
                    seen.add(rel.key)
                    relations.append(rel)

        logger.info("Neo4j bounded search found %d entities and %d relations", len(entities), len(relations))
        return SearchResult(
            entities=entities,
            relations=relations,
            metadata=SearchMetadata(
                total_entities_found=total,
                relationships_limited=limited,
                backend_used="neo4j",
            ),
        )

    def open_nodes(self, names: list[str]) -> KnowledgeGraph:
        return self.run_read(self._open_nodes_tx, names)

    @staticmethod
    def _open_nodes_tx(tx, names: list[str]) -> KnowledgeGraph:
        q = (
            "MATCH (e:Entity) WHERE e.name IN $names "
            "RETURN e.name AS name, e.entityType AS entityType, e.observations AS observations"
        )
        entities = [_entity(r) for r in tx.run(q, names=names)]
        found = [e.name for e in entities]
        relations = [_relation(r) for r in tx.run(_INDUCED_RELATIONS, names=found)] if found else []
        return KnowledgeGraph(entities=entities, relations=relations)

    def get_graph_summary(self) -> GraphSummary:
        return self.run_read(self._graph_summary_tx)

    @staticmethod
    def _graph_summary_tx(tx) -> GraphSummary:
        entity_count = tx.run("MATCH (e:Entity) RETURN count(e) AS count").single()["count"]
        relation_count = tx.run("MATCH (:Entity)-[r]->(:Entity) RETURN count(r) AS count").single()["count"]
        types = tx.run(
            "MATCH (e:Entity) RETURN DISTINCT e.entityType AS entityType ORDER BY entityType"
        )
        return GraphSummary(
            entity_count=entity_count,
            relation_count=relation_count,
            entity_types=[r["entityType"] for r in types if r["entityType"] is not None],
        )

    # --- maintenance ---

    def query(self, cypher: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        with self._driver.session(database=self.cfg.database) as s:
            res = s.run(cypher, **(params or {}))
            return [dict(r) for r in res]
