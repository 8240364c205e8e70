"""Graph memory: entity/relation store with Neo4j primary and file fallback."""

__version__ = "0.1.0"
