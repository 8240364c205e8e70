from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from graph_memory.knowledge_graph import (
    Entity,
    KnowledgeGraphManager,
    ObservationAddition,
    ObservationDeletion,
    Relation,
    SearchOptions,
)
from graph_memory.knowledge_graph.errors import EMPTY_QUERY, PARAMETER_OUT_OF_RANGE, ValidationError

from .auth import api_key_guard

MAX_ENTITIES_RANGE = (1, 100)
MAX_RELATIONSHIPS_RANGE = (1, 50)


class EntityIn(BaseModel):
    name: str
    entityType: str
    observations: list[str] = Field(default_factory=list)

    def to_entity(self) -> Entity:
        return Entity(name=self.name, entity_type=self.entityType, observations=list(self.observations))


class RelationIn(BaseModel):
    model_config = {"populate_by_name": True}

    source: str = Field(alias="from")
    to: str
    relationType: str

    def to_relation(self) -> Relation:
        return Relation(source=self.source, target=self.to, relation_type=self.relationType)


class CreateEntitiesIn(BaseModel):
    entities: list[EntityIn]


class RelationsIn(BaseModel):
    relations: list[RelationIn]


class ObservationAdditionIn(BaseModel):
    entityName: str
    contents: list[str]


class AddObservationsIn(BaseModel):
    observations: list[ObservationAdditionIn]


class ObservationDeletionIn(BaseModel):
    entityName: str
    observations: list[str]


class DeleteObservationsIn(BaseModel):
    deletions: list[ObservationDeletionIn]


class DeleteEntitiesIn(BaseModel):
    entityNames: list[str]


class ReadGraphIn(BaseModel):
    limit: int | None = None
    offset: int | None = None


class SearchIn(BaseModel):
    query: str


class SearchWithRelationshipsIn(BaseModel):
    query: str
    maxEntities: int | None = None
    maxRelationshipsPerEntity: int | None = None
    fallbackToSimple: bool | None = None


class OpenNodesIn(BaseModel):
    names: list[str]


def _require_query(query: str, op: str) -> str:
    if not query.strip():
        raise ValidationError(
            f"{op} query cannot be empty or only whitespace.", data={"query": query}, code=EMPTY_QUERY
        )
    return query


def _check_range(name: str, value: int | None, bounds: tuple[int, int], hint: str = "") -> None:
    if value is None:
        return
    lo, hi = bounds
    if value < lo or value > hi:
        raise ValidationError(
            f"{name} must be a number between {lo} and {hi}.{hint}",
            data={"parameter": name, "value": value, "range": f"{lo}-{hi}"},
            code=PARAMETER_OUT_OF_RANGE,
        )


def search_options(payload: SearchWithRelationshipsIn) -> SearchOptions:
    _check_range(
        "maxEntities",
        payload.maxEntities,
        MAX_ENTITIES_RANGE,
        " Use 5-10 for tight context windows, 15-25 for standard windows, 30-50 for large contexts.",
    )
    _check_range(
        "maxRelationshipsPerEntity",
        payload.maxRelationshipsPerEntity,
        MAX_RELATIONSHIPS_RANGE,
        " Use 2-3 for minimal context, 4-6 for balanced analysis, 8-12 for comprehensive mapping.",
    )
    defaults = SearchOptions()
    return SearchOptions(
        max_entities=payload.maxEntities or defaults.max_entities,
        max_relationships_per_entity=payload.maxRelationshipsPerEntity or defaults.max_relationships_per_entity,
        fallback_to_simple=payload.fallbackToSimple is not False,
    )


def build_graph_router(manager: KnowledgeGraphManager, *, api_key: str | None = None) -> APIRouter:
    r = APIRouter(prefix="/v1/graph", tags=["graph"], dependencies=[Depends(api_key_guard(api_key))])

    @r.post("/create_entities")
    def create_entities(payload: CreateEntitiesIn) -> list[dict[str, Any]]:
        created = manager.create_entities([e.to_entity() for e in payload.entities])
        return [e.to_dict() for e in created]

    @r.post("/create_relations")
    def create_relations(payload: RelationsIn) -> list[dict[str, Any]]:
        created = manager.create_relations([rel.to_relation() for rel in payload.relations])
        return [rel.to_dict() for rel in created]

    @r.post("/add_observations")
    def add_observations(payload: AddObservationsIn) -> list[dict[str, Any]]:
        results = manager.add_observations(
            [ObservationAddition(entity_name=o.entityName, contents=o.contents) for o in payload.observations]
        )
        return [res.to_dict() for res in results]

    @r.post("/delete_entities")
    def delete_entities(payload: DeleteEntitiesIn) -> dict[str, str]:
        manager.delete_entities(payload.entityNames)
        return {"message": "Entities deleted successfully"}

    @r.post("/delete_observations")
    def delete_observations(payload: DeleteObservationsIn) -> dict[str, str]:
        manager.delete_observations(
            [ObservationDeletion(entity_name=d.entityName, observations=d.observations) for d in payload.deletions]
        )
        return {"message": "Observations deleted successfully"}

    @r.post("/delete_relations")
    def delete_relations(payload: RelationsIn) -> dict[str, str]:
        manager.delete_relations([rel.to_relation() for rel in payload.relations])
        return {"message": "Relations deleted successfully"}

    @r.post("/read_graph")
    def read_graph(payload: ReadGraphIn | None = None) -> dict[str, Any]:
        payload = payload or ReadGraphIn()
        if payload.limit is not None and payload.limit < 1:
            raise ValidationError(
                "limit must be a positive integer",
                data={"parameter": "limit", "value": payload.limit},
                code=PARAMETER_OUT_OF_RANGE,
            )
        if payload.offset is not None and payload.offset < 0:
            raise ValidationError(
                "offset must be a non-negative integer",
                data={"parameter": "offset", "value": payload.offset},
                code=PARAMETER_OUT_OF_RANGE,
            )
        return manager.read_graph(payload.limit, payload.offset).to_dict()

    @r.post("/search_nodes")
    def search_nodes(payload: SearchIn) -> dict[str, Any]:
        return manager.search_nodes(_require_query(payload.query, "search_nodes")).to_dict()

    @r.post("/search_with_relationships")
    def search_with_relationships(payload: SearchWithRelationshipsIn) -> dict[str, Any]:
        query = _require_query(payload.query, "search_with_relationships")
        return manager.search_with_relationships(query, search_options(payload)).to_dict()

    @r.post("/open_nodes")
    def open_nodes(payload: OpenNodesIn) -> dict[str, Any]:
        return manager.open_nodes(payload.names).to_dict()

    @r.post("/get_graph_summary")
    def get_graph_summary() -> dict[str, Any]:
        return manager.get_graph_summary().to_dict()

    @r.post("/get_storage_status")
    def get_storage_status() -> dict[str, Any]:
        return manager.get_storage_status().to_dict()

    return r
