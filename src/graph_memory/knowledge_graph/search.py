"""Search predicates and the bounded relationship algorithm.

The predicates here are shared by every backend so that a file-backed search
and a Neo4j-backed search agree on what "matches" means. `SearchEngine` adds
the downgrade from bounded search to plain search when the primary backend
fails mid-query.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .models import Entity, KnowledgeGraph, Relation, SearchMetadata, SearchOptions, SearchResult
from .orchestrator import BackendOrchestrator

logger = logging.getLogger(__name__)


def entity_matches(entity: Entity, query: str) -> bool:
    q = query.lower()
    if q in entity.name.lower() or q in (entity.entity_type or "").lower():
        return True
    return any(q in obs.lower() for obs in entity.observations)


def induced_relations(relations: Iterable[Relation], names: set[str]) -> list[Relation]:
    """Relations whose endpoints both lie in `names`."""
    return [r for r in relations if r.source in names and r.target in names]


def primary_entity(relation: Relation, matched: set[str]) -> str:
    # Relations with both ends matched are grouped under their source.
    return relation.source if relation.source in matched else relation.target


def bound_relationships(
    candidates: Iterable[Relation], matched: set[str], max_per_entity: int
) -> tuple[list[Relation], bool]:
    """Group candidate relations by primary entity and cap each group.

    Returns the surviving relations (deduplicated by triple) and whether any
    group had to be truncated.
    """
    groups: dict[str, list[Relation]] = {}
    for rel in candidates:
        if rel.source not in matched and rel.target not in matched:
            continue
        groups.setdefault(primary_entity(rel, matched), []).append(rel)

    limited = False
    seen: set[tuple[str, str, str]] = set()
    out: list[Relation] = []
    for name in sorted(groups):
        rels = sorted(groups[name], key=lambda r: (r.source, r.relation_type, r.target))
        if len(rels) > max_per_entity:
            limited = True
        for rel in rels[:max_per_entity]:
            if rel.key in seen:
                continue
            seen.add(rel.key)
            out.append(rel)
    return out, limited


def search_graph(graph: KnowledgeGraph, query: str) -> KnowledgeGraph:
    entities = [e for e in graph.entities if entity_matches(e, query)]
    names = {e.name for e in entities}
    return KnowledgeGraph(entities=entities, relations=induced_relations(graph.relations, names))


def bounded_search_graph(graph: KnowledgeGraph, query: str, options: SearchOptions) -> SearchResult:
    matched = [e for e in graph.entities if entity_matches(e, query)]
    limited_entities = matched[: options.max_entities]
    names = {e.name for e in limited_entities}
    relations, limited = bound_relationships(graph.relations, names, options.max_relationships_per_entity)
    return SearchResult(
        entities=limited_entities,
        relations=relations,
        metadata=SearchMetadata(
            total_entities_found=len(matched),
            relationships_limited=limited,
            backend_used="file",
        ),
    )


class SearchEngine:
    """Plain and bounded search routed through the orchestrator."""

    def __init__(self, orchestrator: BackendOrchestrator):
        self.orchestrator = orchestrator

    def search_nodes(self, query: str) -> KnowledgeGraph:
        return self.orchestrator.execute(lambda store: store.search_nodes(query))

    def search_with_relationships(self, query: str, options: SearchOptions | None = None) -> SearchResult:
        opts = options or SearchOptions()
        on_primary = self.orchestrator.primary_available
        try:
            return self.orchestrator.execute(
                lambda store: store.search_with_relationships(query, opts),
                demote_on_error=False,
            )
        except Exception:
            # Only a primary failure is downgraded; file errors surface as-is.
            if not on_primary or not opts.fallback_to_simple:
                raise
            logger.exception("Bounded search failed for query %r", query)

        logger.info("Falling back to simple search for query %r", query)
        simple = self.search_nodes(query)
        return SearchResult(
            entities=simple.entities,
            relations=simple.relations,
            metadata=SearchMetadata(
                total_entities_found=len(simple.entities),
                relationships_limited=False,
                backend_used=self.orchestrator.last_operation_backend,
            ),
        )
