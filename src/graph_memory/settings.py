from __future__ import annotations

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GraphMemorySettings(BaseSettings):
    """Configuration for the graph memory store.

    Environment variables are prefixed with GRAPH_MEMORY_. The bare NEO4J_*
    and MEMORY_FILE_PATH variables are honoured when the prefixed ones are
    unset.
    """

    model_config = SettingsConfigDict(env_prefix="GRAPH_MEMORY_", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")

    # --- Graph DB (Neo4j) ---
    neo4j_uri: str | None = None
    neo4j_user: str | None = None
    neo4j_password: str | None = None
    neo4j_database: str = "neo4j"

    # --- Fallback file ---
    memory_file_path: str = Field(
        default="~/.graph_memory/memory_fallback.jsonl",
        description="JSONL file used when Neo4j is unavailable",
    )

    # --- Startup ---
    probe_in_background: bool = Field(
        default=True, description="Run the Neo4j connectivity probe on a background thread"
    )

    # --- HTTP ---
    bind_host: str = "0.0.0.0"
    bind_port: int = 8090
    api_key: str | None = Field(default=None, description="If set, require X-API-Key")

    def _field_or_env(self, name: str, env: str) -> str | None:
        # Explicit or GRAPH_MEMORY_* values win over the bare variable.
        if name in self.model_fields_set:
            return getattr(self, name)
        return os.getenv(env) or getattr(self, name)

    def resolved_neo4j_uri(self) -> str | None:
        return self._field_or_env("neo4j_uri", "NEO4J_URI")

    def resolved_neo4j_user(self) -> str | None:
        return self._field_or_env("neo4j_user", "NEO4J_USER")

    def resolved_neo4j_password(self) -> str | None:
        return self._field_or_env("neo4j_password", "NEO4J_PASSWORD")

    def resolved_neo4j_database(self) -> str:
        return self._field_or_env("neo4j_database", "NEO4J_DATABASE") or "neo4j"

    def resolved_memory_file_path(self) -> str:
        path = self._field_or_env("memory_file_path", "MEMORY_FILE_PATH") or self.memory_file_path
        return os.path.expanduser(path)

    @property
    def neo4j_configured(self) -> bool:
        return bool(self.resolved_neo4j_uri() and self.resolved_neo4j_user() and self.resolved_neo4j_password())


settings = GraphMemorySettings()
