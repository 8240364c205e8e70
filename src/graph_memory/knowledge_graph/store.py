from __future__ import annotations

from typing import Protocol

from .models import (
    BackendName,
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


class GraphStore(Protocol):
    """Repository contract implemented by every storage backend.

    Implementations must be observably equivalent: the same calls against a
    Neo4j store and a file store leave the same graph behind.
    """

    backend_name: BackendName

    def create_entities(self, entities: list[Entity]) -> list[Entity]: ...

    def create_relations(self, relations: list[Relation]) -> list[Relation]: ...

    def add_observations(self, additions: list[ObservationAddition]) -> list[ObservationResult]: ...

    def delete_entities(self, names: list[str]) -> None: ...

    def delete_observations(self, deletions: list[ObservationDeletion]) -> None: ...

    def delete_relations(self, relations: list[Relation]) -> None: ...

    def read_graph(self, limit: int | None = None, offset: int | None = None) -> KnowledgeGraph: ...

    def search_nodes(self, query: str) -> KnowledgeGraph: ...

    def search_with_relationships(self, query: str, options: SearchOptions) -> SearchResult: ...

    def open_nodes(self, names: list[str]) -> KnowledgeGraph: ...

    def get_graph_summary(self) -> GraphSummary: ...

    def close(self) -> None: ...


class PrimaryGraphStore(GraphStore, Protocol):
    """A store that talks to a remote database and can be probed."""

    def verify_connectivity(self) -> None: ...

    def ensure_schema(self) -> None: ...
