from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Literal

BackendName = Literal["neo4j", "file"]


def unique_in_order(items: Iterable[str]) -> list[str]:
    """Drop repeated strings, keeping the first occurrence of each."""
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


@dataclass(slots=True)
class Entity:
    """A named node in the knowledge graph.

    `name` is the identity; `observations` never holds the same string twice.
    """

    name: str
    entity_type: str
    observations: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Entity:
        return cls(
            name=data["name"],
            entity_type=data.get("entityType") or "",
            observations=unique_in_order(data.get("observations") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "entityType": self.entity_type,
            "observations": list(self.observations),
        }


@dataclass(frozen=True, slots=True)
class Relation:
    """A directed, typed edge between two entity names."""

    source: str
    target: str
    relation_type: str

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.source, self.relation_type, self.target)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Relation:
        return cls(source=data["from"], target=data["to"], relation_type=data["relationType"])

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.source, "to": self.target, "relationType": self.relation_type}


@dataclass(slots=True)
class KnowledgeGraph:
    entities: list[Entity] = field(default_factory=list)
    relations: list[Relation] = field(default_factory=list)

    def entity_names(self) -> set[str]:
        return {e.name for e in self.entities}

    def find_entity(self, name: str) -> Entity | None:
        for e in self.entities:
            if e.name == name:
                return e
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "entities": [e.to_dict() for e in self.entities],
            "relations": [r.to_dict() for r in self.relations],
        }


@dataclass(frozen=True, slots=True)
class ObservationAddition:
    entity_name: str
    contents: list[str]


@dataclass(frozen=True, slots=True)
class ObservationResult:
    entity_name: str
    added_observations: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"entityName": self.entity_name, "addedObservations": list(self.added_observations)}


@dataclass(frozen=True, slots=True)
class ObservationDeletion:
    entity_name: str
    observations: list[str]


@dataclass(frozen=True, slots=True)
class SearchOptions:
    """Bounds for relationship-aware search."""

    max_entities: int = 20
    max_relationships_per_entity: int = 5
    fallback_to_simple: bool = True


@dataclass(slots=True)
class SearchMetadata:
    total_entities_found: int
    relationships_limited: bool
    backend_used: BackendName

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalEntitiesFound": self.total_entities_found,
            "relationshipsLimited": self.relationships_limited,
            "backendUsed": self.backend_used,
        }


@dataclass(slots=True)
class SearchResult:
    entities: list[Entity]
    relations: list[Relation]
    metadata: SearchMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "entities": [e.to_dict() for e in self.entities],
            "relations": [r.to_dict() for r in self.relations],
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class GraphSummary:
    entity_count: int
    relation_count: int
    entity_types: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "entityCount": self.entity_count,
            "relationCount": self.relation_count,
            "entityTypes": list(self.entity_types),
        }
