"""Newline-delimited JSON graph storage.

One record per line, tagged with `type`:

    {"type": "entity", "name": ..., "entityType": ..., "observations": [...]}
    {"type": "relation", "from": ..., "to": ..., "relationType": ...}

Every mutation loads the whole file, edits the in-memory copy and rewrites
the file. Calls on the same path are serialized with a process-wide lock;
separate processes sharing one file can still overwrite each other.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from .errors import EntityNotFound, StorageError
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
    unique_in_order,
)
from .search import bounded_search_graph, induced_relations, search_graph

logger = logging.getLogger(__name__)

_LOCKS: dict[Path, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    with _LOCKS_GUARD:
        lock = _LOCKS.get(path)
        if lock is None:
            lock = _LOCKS[path] = threading.RLock()
        return lock


class JsonlGraphFile:
    """Load and save a whole graph to one JSONL file."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> KnowledgeGraph:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return KnowledgeGraph()
        except OSError as e:
            raise StorageError(f"Failed to read {self.path}: {e}", data={"path": str(self.path)}) from e

        graph = KnowledgeGraph()
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                item: dict[str, Any] = json.loads(line)
                kind = item.get("type")
                if kind == "entity":
                    graph.entities.append(Entity.from_dict(item))
                elif kind == "relation":
                    graph.relations.append(Relation.from_dict(item))
                else:
                    logger.warning("Skipping record with unknown type %r at %s:%d", kind, self.path, lineno)
            except (json.JSONDecodeError, KeyError, AttributeError, TypeError) as e:
                raise StorageError(
                    f"Malformed record at {self.path}:{lineno}: {e}",
                    data={"path": str(self.path), "line": lineno},
                ) from e
        return graph

    def save(self, graph: KnowledgeGraph) -> None:
        lines = [json.dumps({"type": "entity", **e.to_dict()}, ensure_ascii=False) for e in graph.entities]
        lines += [json.dumps({"type": "relation", **r.to_dict()}, ensure_ascii=False) for r in graph.relations]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # The target is only ever replaced by a fully written sibling file.
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write("\n".join(lines) + "\n")
                os.replace(tmp, self.path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {self.path}: {e}", data={"path": str(self.path)}) from e


class FileGraphStore:
    """GraphStore backed by a JSONL file."""

    backend_name: BackendName = "file"

    def __init__(self, path: str | Path):
        self.file = JsonlGraphFile(path)
        self._lock = _lock_for(self.file.path.resolve())

    @property
    def path(self) -> Path:
        return self.file.path

    def load(self) -> KnowledgeGraph:
        with self._lock:
            return self.file.load()

    def create_entities(self, entities: list[Entity]) -> list[Entity]:
        logger.info("Executing create_entities on file storage")
        with self._lock:
            graph = self.file.load()
            index = {e.name: e for e in graph.entities}
            affected: list[Entity] = []
            for incoming in entities:
                existing = index.get(incoming.name)
                if existing is None:
                    existing = Entity(
                        name=incoming.name,
                        entity_type=incoming.entity_type,
                        observations=unique_in_order(incoming.observations),
                    )
                    graph.entities.append(existing)
                    index[existing.name] = existing
                else:
                    existing.entity_type = incoming.entity_type
                    existing.observations = unique_in_order([*existing.observations, *incoming.observations])
                affected.append(Entity(existing.name, existing.entity_type, list(existing.observations)))
            self.file.save(graph)
        return affected

    def create_relations(self, relations: list[Relation]) -> list[Relation]:
        logger.info("Executing create_relations on file storage")
        with self._lock:
            graph = self.file.load()
            names = graph.entity_names()
            existing = {r.key for r in graph.relations}
            created: list[Relation] = []
            for rel in relations:
                missing = [n for n in (rel.source, rel.target) if n not in names]
                if missing:
                    logger.warning("Skipping relation creation: entity %s not found", missing[0])
                    continue
                if rel.key in existing:
                    continue
                existing.add(rel.key)
                graph.relations.append(rel)
                created.append(rel)
            self.file.save(graph)
        return created

    def add_observations(self, additions: list[ObservationAddition]) -> list[ObservationResult]:
        logger.info("Executing add_observations on file storage")
        with self._lock:
            graph = self.file.load()
            results: list[ObservationResult] = []
            for add in additions:
                entity = graph.find_entity(add.entity_name)
                if entity is None:
                    raise EntityNotFound(add.entity_name, backend=self.backend_name)
                present = set(entity.observations)
                new = [c for c in unique_in_order(add.contents) if c not in present]
                entity.observations.extend(new)
                results.append(ObservationResult(entity_name=add.entity_name, added_observations=new))
            self.file.save(graph)
        return results

    def delete_entities(self, names: list[str]) -> None:
        logger.info("Executing delete_entities on file storage")
        doomed = set(names)
        with self._lock:
            graph = self.file.load()
            graph.entities = [e for e in graph.entities if e.name not in doomed]
            graph.relations = [r for r in graph.relations if r.source not in doomed and r.target not in doomed]
            self.file.save(graph)

    def delete_observations(self, deletions: list[ObservationDeletion]) -> None:
        logger.info("Executing delete_observations on file storage")
        with self._lock:
            graph = self.file.load()
            for d in deletions:
                entity = graph.find_entity(d.entity_name)
                if entity is None:
                    continue
                drop = set(d.observations)
                entity.observations = [o for o in entity.observations if o not in drop]
            self.file.save(graph)

    def delete_relations(self, relations: list[Relation]) -> None:
        logger.info("Executing delete_relations on file storage")
        doomed = {r.key for r in relations}
        with self._lock:
            graph = self.file.load()
            graph.relations = [r for r in graph.relations if r.key not in doomed]
            self.file.save(graph)

    def read_graph(self, limit: int | None = None, offset: int | None = None) -> KnowledgeGraph:
        graph = self.load()
        if limit is None:
            return graph
        start = offset or 0
        page = graph.entities[start : start + limit]
        names = {e.name for e in page}
        return KnowledgeGraph(entities=page, relations=induced_relations(graph.relations, names))

    def search_nodes(self, query: str) -> KnowledgeGraph:
        return search_graph(self.load(), query)

    def search_with_relationships(self, query: str, options: SearchOptions) -> SearchResult:
        return bounded_search_graph(self.load(), query, options)

    def open_nodes(self, names: list[str]) -> KnowledgeGraph:
        graph = self.load()
        wanted = set(names)
        entities = [e for e in graph.entities if e.name in wanted]
        found = {e.name for e in entities}
        return KnowledgeGraph(entities=entities, relations=induced_relations(graph.relations, found))

    def get_graph_summary(self) -> GraphSummary:
        graph = self.load()
        return GraphSummary(
            entity_count=len(graph.entities),
            relation_count=len(graph.relations),
            entity_types=sorted({e.entity_type for e in graph.entities}),
        )

    def close(self) -> None:
        return None
