from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import urlsplit, urlunsplit

from .models import BackendName
from .orchestrator import BackendOrchestrator

ConnectionHealth = Literal["healthy", "degraded", "unavailable"]


def mask_uri(uri: str | None) -> str | None:
    """Replace the password embedded in a URI with `***`; user and host stay."""
    if not uri:
        return None
    parts = urlsplit(uri)
    if "@" not in parts.netloc:
        if "@" in uri:
            # Not a scheme://netloc URI; drop the whole userinfo.
            return "***@" + uri.rpartition("@")[2]
        return uri
    userinfo, _, host = parts.netloc.rpartition("@")
    user = userinfo.split(":", 1)[0]
    netloc = f"{user}:***@{host}" if user else f"***@{host}"
    return urlunsplit(parts._replace(netloc=netloc))


@dataclass(frozen=True, slots=True)
class StorageStatus:
    current_backend: BackendName
    last_operation_backend: BackendName
    neo4j_configured: bool
    neo4j_available: bool
    file_path: str
    backend_consistent: bool
    connection_health: ConnectionHealth
    neo4j_uri: str | None
    neo4j_user: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentBackend": self.current_backend,
            "lastOperationBackend": self.last_operation_backend,
            "neo4jConfigured": self.neo4j_configured,
            "neo4jAvailable": self.neo4j_available,
            "filePath": self.file_path,
            "backendConsistent": self.backend_consistent,
            "connectionHealth": self.connection_health,
            "configuration": {
                "NEO4J_URI": self.neo4j_uri,
                "NEO4J_USER": self.neo4j_user,
                "MEMORY_FILE_PATH": self.file_path,
            },
        }


def storage_status(
    orchestrator: BackendOrchestrator,
    *,
    file_path: str,
    neo4j_uri: str | None,
    neo4j_user: str | None,
) -> StorageStatus:
    configured = orchestrator.configured
    available = orchestrator.primary_available
    current = orchestrator.current_backend

    health: ConnectionHealth
    if configured and available:
        health = "healthy"
    elif configured:
        health = "degraded"
    else:
        health = "unavailable"

    return StorageStatus(
        current_backend=current,
        last_operation_backend=orchestrator.last_operation_backend,
        neo4j_configured=configured,
        neo4j_available=available,
        file_path=file_path,
        backend_consistent=current == orchestrator.last_operation_backend,
        connection_health=health,
        neo4j_uri=mask_uri(neo4j_uri),
        neo4j_user=neo4j_user,
    )
