from __future__ import annotations

import logging
from typing import Any

from .errors import BackendUnavailable
from .file_store import FileGraphStore
from .migration import ConflictResolution, MigrationReport, find_duplicates, migrate_file_to_primary
from .models import (
    Entity,
    GraphSummary,
    KnowledgeGraph,
    ObservationAddition,
    ObservationDeletion,
    ObservationResult,
    Relation,
    SearchOptions,
    SearchResult,
)
from .neo4j_store import Neo4jConfig, Neo4jGraphStore
from .orchestrator import BackendOrchestrator
from .search import SearchEngine
from .status import StorageStatus, storage_status

logger = logging.getLogger(__name__)


class KnowledgeGraphManager:
    """Operation surface of the graph memory store.

    Each call is routed by the orchestrator to Neo4j while it is healthy and
    to the JSONL fallback file otherwise.
    """

    def __init__(
        self,
        file_store: FileGraphStore,
        primary: Neo4jGraphStore | None = None,
        *,
        neo4j_uri: str | None = None,
        neo4j_user: str | None = None,
        configured: bool | None = None,
    ):
        self.file_store = file_store
        self.neo4j_uri = neo4j_uri
        self.neo4j_user = neo4j_user
        if configured is None:
            configured = primary is not None
        self.orchestrator = BackendOrchestrator(primary, file_store, configured=configured)
        self.search = SearchEngine(self.orchestrator)

    def _execute(self, operation: Any) -> Any:
        return self.orchestrator.execute(operation)

    def create_entities(self, entities: list[Entity]) -> list[Entity]:
        return self._execute(lambda store: store.create_entities(entities))

    def create_relations(self, relations: list[Relation]) -> list[Relation]:
        return self._execute(lambda store: store.create_relations(relations))

    def add_observations(self, additions: list[ObservationAddition]) -> list[ObservationResult]:
        return self._execute(lambda store: store.add_observations(additions))

    def delete_entities(self, names: list[str]) -> None:
        self._execute(lambda store: store.delete_entities(names))

    def delete_observations(self, deletions: list[ObservationDeletion]) -> None:
        self._execute(lambda store: store.delete_observations(deletions))

    def delete_relations(self, relations: list[Relation]) -> None:
        self._execute(lambda store: store.delete_relations(relations))

    def read_graph(self, limit: int | None = None, offset: int | None = None) -> KnowledgeGraph:
        return self._execute(lambda store: store.read_graph(limit, offset))

    def search_nodes(self, query: str) -> KnowledgeGraph:
        return self.search.search_nodes(query)

    def search_with_relationships(self, query: str, options: SearchOptions | None = None) -> SearchResult:
        return self.search.search_with_relationships(query, options)

    def open_nodes(self, names: list[str]) -> KnowledgeGraph:
        return self._execute(lambda store: store.open_nodes(names))

    def get_graph_summary(self) -> GraphSummary:
        return self._execute(lambda store: store.get_graph_summary())

    def get_storage_status(self) -> StorageStatus:
        return storage_status(
            self.orchestrator,
            file_path=str(self.file_store.path),
            neo4j_uri=self.neo4j_uri,
            neo4j_user=self.neo4j_user,
        )

    def migrate_file_to_primary(
        self, *, dry_run: bool = False, conflict_resolution: ConflictResolution = "merge"
    ) -> MigrationReport:
        primary = self.orchestrator.primary
        return migrate_file_to_primary(
            self.file_store,
            primary if isinstance(primary, Neo4jGraphStore) else None,
            primary_available=self.orchestrator.primary_available,
            dry_run=dry_run,
            conflict_resolution=conflict_resolution,
        )

    def find_duplicates(self) -> dict[str, list[dict[str, Any]]]:
        primary = self.orchestrator.primary
        if not self.orchestrator.primary_available or not isinstance(primary, Neo4jGraphStore):
            raise BackendUnavailable("Duplicate check requires an available Neo4j backend")
        return find_duplicates(primary)

    def close(self) -> None:
        self.orchestrator.close()


def create_manager(settings: Any, *, probe: bool = True) -> KnowledgeGraphManager:
    """Build a manager from `GraphMemorySettings`.

    Neo4j is only attempted when URI, user and password are all set. The
    connectivity probe runs once, on a background thread when
    `settings.probe_in_background` is true.
    """
    file_store = FileGraphStore(settings.resolved_memory_file_path())
    uri = settings.resolved_neo4j_uri()
    user = settings.resolved_neo4j_user()
    password = settings.resolved_neo4j_password()

    primary: Neo4jGraphStore | None = None
    configured = settings.neo4j_configured
    if configured:
        try:
            primary = Neo4jGraphStore(
                Neo4jConfig(uri=uri, user=user, password=password, database=settings.resolved_neo4j_database())
            )
        except Exception:
            logger.exception("Failed to initialize Neo4j driver")
    else:
        logger.info("Neo4j not fully configured (URI, user, password). Using file storage.")

    manager = KnowledgeGraphManager(
        file_store,
        primary,
        neo4j_uri=uri,
        neo4j_user=user,
        configured=configured,
    )
    if probe and primary is not None:
        if settings.probe_in_background:
            manager.orchestrator.start_probe()
        else:
            manager.orchestrator.verify_connectivity()
    return manager
