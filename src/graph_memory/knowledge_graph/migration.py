"""Copy the fallback file into Neo4j, and audit Neo4j for duplicates.

Migration only moves data. It never changes which backend the running
process considers healthy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from .file_store import FileGraphStore
from .models import Entity, Relation, unique_in_order
from .neo4j_store import Neo4jGraphStore, quote_rel_type

logger = logging.getLogger(__name__)

ConflictResolution = Literal["skip", "overwrite", "merge"]
ItemStatus = Literal["created", "existed", "error"]

CONFLICT_RESOLUTIONS: tuple[str, ...] = ("skip", "overwrite", "merge")


@dataclass(slots=True)
class MigrationSummary:
    entities_processed: int = 0
    entities_created: int = 0
    entities_skipped: int = 0
    entities_updated: int = 0
    relations_processed: int = 0
    relations_created: int = 0
    relations_skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entitiesProcessed": self.entities_processed,
            "entitiesCreated": self.entities_created,
            "entitiesSkipped": self.entities_skipped,
            "entitiesUpdated": self.entities_updated,
            "relationsProcessed": self.relations_processed,
            "relationsCreated": self.relations_created,
            "relationsSkipped": self.relations_skipped,
            "errors": list(self.errors),
        }


@dataclass(slots=True)
class MigrationReport:
    summary: MigrationSummary = field(default_factory=MigrationSummary)
    logs: list[str] = field(default_factory=list)
    entity_mappings: list[dict[str, str]] = field(default_factory=list)
    relation_mappings: list[dict[str, str]] = field(default_factory=list)

    def log(self, line: str) -> None:
        logger.info(line)
        self.logs.append(line)

    def error(self, line: str) -> None:
        logger.error(line)
        self.logs.append(f"ERROR: {line}")
        self.summary.errors.append(line)

    @property
    def success(self) -> bool:
        return not self.summary.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "logs": list(self.logs),
            "crossReferences": {
                "entityMappings": list(self.entity_mappings),
                "relationMappings": list(self.relation_mappings),
            },
        }


def _migrate_entity_tx(tx, entity: Entity, conflict_resolution: ConflictResolution) -> str:
    existing = tx.run(
        "MATCH (e:Entity {name: $name}) RETURN e.observations AS observations", name=entity.name
    ).single()
    if existing is None:
        tx.run(
            "CREATE (e:Entity {name: $name, entityType: $entityType, observations: $observations})",
            name=entity.name,
            entityType=entity.entity_type,
            observations=unique_in_order(entity.observations),
        )
        return "created"
    if conflict_resolution == "skip":
        return "skipped"
    if conflict_resolution == "overwrite":
        tx.run(
            "MATCH (e:Entity {name: $name}) SET e.entityType = $entityType, e.observations = $observations",
            name=entity.name,
            entityType=entity.entity_type,
            observations=unique_in_order(entity.observations),
        )
        return "updated"
    merged = unique_in_order([*(existing["observations"] or []), *entity.observations])
    tx.run("MATCH (e:Entity {name: $name}) SET e.observations = $observations", name=entity.name, observations=merged)
    return "updated"


def _migrate_relation_tx(tx, rel: Relation) -> str:
    endpoints = tx.run(
        "MATCH (from:Entity {name: $source}), (to:Entity {name: $target}) RETURN count(*) AS n",
        source=rel.source,
        target=rel.target,
    ).single()
    if endpoints is None or endpoints["n"] == 0:
        return "missing"
    rel_type = quote_rel_type(rel.relation_type)
    found = tx.run(
        f"MATCH (:Entity {{name: $source}})-[r:{rel_type}]->(:Entity {{name: $target}}) RETURN count(r) AS n",
        source=rel.source,
        target=rel.target,
    ).single()
    if found is not None and found["n"] > 0:
        return "existed"
    tx.run(
        f"MATCH (from:Entity {{name: $source}}), (to:Entity {{name: $target}}) "
        f"CREATE (from)-[:{rel_type} {{created: timestamp()}}]->(to)",
        source=rel.source,
        target=rel.target,
    )
    return "created"


def migrate_file_to_primary(
    file_store: FileGraphStore,
    primary: Neo4jGraphStore | None,
    *,
    primary_available: bool,
    dry_run: bool = False,
    conflict_resolution: ConflictResolution = "merge",
) -> MigrationReport:
    report = MigrationReport()
    summary = report.summary
    report.log(f"Migration started at {datetime.now(UTC).isoformat()}")
    report.log(f"Mode: {'DRY RUN' if dry_run else 'LIVE MIGRATION'}")
    report.log(f"Conflict resolution: {conflict_resolution}")

    if conflict_resolution not in CONFLICT_RESOLUTIONS:
        report.error(f"Unknown conflict resolution: {conflict_resolution}")
        return report
    if primary is None or not primary_available:
        report.error("Cannot migrate: Neo4j is not available")
        return report

    try:
        graph = file_store.load()
    except Exception as e:
        report.error(f"Migration failed: {e}")
        return report
    report.log(f"Loaded fallback file: {len(graph.entities)} entities, {len(graph.relations)} relations")

    report.log("Starting entity migration...")
    for entity in graph.entities:
        desc = f"{entity.name} ({entity.entity_type})"
        summary.entities_processed += 1
        if dry_run:
            report.log(f"  DRY RUN: Would process entity: {desc}")
            report.entity_mappings.append({"fileEntity": desc, "neo4jStatus": "created"})
            continue
        try:
            action = primary.run_write(_migrate_entity_tx, entity, conflict_resolution)
        except Exception as e:
            report.error(f"Failed to migrate entity {entity.name}: {e}")
            report.entity_mappings.append({"fileEntity": desc, "neo4jStatus": "error"})
            continue
        if action == "created":
            summary.entities_created += 1
            report.log(f"  Created new entity: {desc}")
        elif action == "updated":
            summary.entities_updated += 1
            report.log(f"  Updated existing entity ({conflict_resolution}): {desc}")
        else:
            summary.entities_skipped += 1
            report.log(f"  Skipped existing entity: {desc}")
        report.entity_mappings.append(
            {"fileEntity": desc, "neo4jStatus": "created" if action == "created" else "existed"}
        )

    report.log("Starting relation migration...")
    for rel in graph.relations:
        desc = f"{rel.source} -[{rel.relation_type}]-> {rel.target}"
        summary.relations_processed += 1
        if dry_run:
            report.log(f"  DRY RUN: Would process relation: {desc}")
            report.relation_mappings.append({"fileRelation": desc, "neo4jStatus": "created"})
            continue
        try:
            action = primary.run_write(_migrate_relation_tx, rel)
        except Exception as e:
            report.error(f"Failed to migrate relation {rel.source}->{rel.target}: {e}")
            report.relation_mappings.append({"fileRelation": desc, "neo4jStatus": "error"})
            continue
        status: ItemStatus
        if action == "created":
            summary.relations_created += 1
            status = "created"
            report.log(f"  Created new relation: {desc}")
        elif action == "existed":
            summary.relations_skipped += 1
            status = "existed"
            report.log(f"  Relation already exists: {desc}")
        else:
            summary.relations_skipped += 1
            status = "error"
            report.log(f"  Skipped relation (entities don't exist): {desc}")
        report.relation_mappings.append({"fileRelation": desc, "neo4jStatus": status})

    report.log(f"Migration completed at {datetime.now(UTC).isoformat()}")
    report.log(
        f"Summary: {summary.entities_created} entities created, "
        f"{summary.entities_updated} updated, {summary.entities_skipped} skipped"
    )
    report.log(f"Summary: {summary.relations_created} relations created, {summary.relations_skipped} skipped")
    report.log(f"Errors: {len(summary.errors)}")
    return report


def find_duplicates(primary: Neo4jGraphStore) -> dict[str, list[dict[str, Any]]]:
    """Report duplicate entity names, relation triples and observations."""
    entities = primary.query(
        """
        MATCH (e:Entity)
        WITH e.name AS name, count(e) AS count
        WHERE count > 1
        RETURN name, count
        ORDER BY count DESC, name
        """
    )
    relations = primary.query(
        """
        MATCH (from:Entity)-[r]->(to:Entity)
        WITH from.name AS source, to.name AS target, type(r) AS relationType, count(r) AS count
        WHERE count > 1
        RETURN source, target, relationType, count
        ORDER BY count DESC, source, relationType, target
        """
    )
    observations = primary.query(
        """
        MATCH (e:Entity)
        WITH e.name AS name, coalesce(e.observations, []) AS obs
        WITH name, size(obs) AS total,
             size(reduce(seen = [], o IN obs | CASE WHEN o IN seen THEN seen ELSE seen + o END)) AS uniqueCount
        WHERE total > uniqueCount
        RETURN name, total - uniqueCount AS duplicates
        ORDER BY duplicates DESC, name
        """
    )
    return {"entities": entities, "relations": relations, "observations": observations}
