"""Knowledge graph storage with Neo4j primary and JSONL file fallback.

This module provides:
- Entity/relation models and the `GraphStore` repository contract
- A Neo4j implementation and a JSONL file implementation of that contract
- An orchestrator that demotes Neo4j to the file store on failure
- Plain and bounded, relationship-aware search
"""

from .errors import EntityNotFound, KnowledgeGraphError, StorageError, ValidationError
from .file_store import FileGraphStore, JsonlGraphFile
from .manager import KnowledgeGraphManager, create_manager
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
from .store import GraphStore

__all__ = [
    "BackendOrchestrator",
    "Entity",
    "EntityNotFound",
    "FileGraphStore",
    "GraphStore",
    "GraphSummary",
    "JsonlGraphFile",
    "KnowledgeGraph",
    "KnowledgeGraphError",
    "KnowledgeGraphManager",
    "Neo4jConfig",
    "Neo4jGraphStore",
    "ObservationAddition",
    "ObservationDeletion",
    "ObservationResult",
    "Relation",
    "SearchOptions",
    "SearchResult",
    "StorageError",
    "ValidationError",
    "create_manager",
]
