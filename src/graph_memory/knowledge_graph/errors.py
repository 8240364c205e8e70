from __future__ import annotations

from typing import Any

# JSON-RPC style codes shared with the transport layer.
INTERNAL_ERROR = -32603
ENTITY_NOT_FOUND = -32001
NEO4J_CONNECTION_ERROR = -32010
FILE_STORAGE_ERROR = -32012
VALIDATION_ERROR = -32020
EMPTY_QUERY = -32021
PARAMETER_OUT_OF_RANGE = -32022


class KnowledgeGraphError(Exception):
    """Base error for graph operations. Carries a stable numeric code."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str, *, data: dict[str, Any] | None = None, code: int | None = None):
        super().__init__(message)
        self.message = message
        self.data = data or {}
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": self.data}


class EntityNotFound(KnowledgeGraphError):
    code = ENTITY_NOT_FOUND

    def __init__(self, entity_name: str, *, backend: str):
        super().__init__(
            f"Entity with name {entity_name} not found",
            data={"entityName": entity_name, "backend": backend},
        )
        self.entity_name = entity_name
        self.backend = backend


class ValidationError(KnowledgeGraphError):
    code = VALIDATION_ERROR


class BackendUnavailable(KnowledgeGraphError):
    code = NEO4J_CONNECTION_ERROR


class StorageError(KnowledgeGraphError):
    code = FILE_STORAGE_ERROR


# Raised by a backend for caller misuse; never a reason to demote the primary.
DOMAIN_ERRORS: tuple[type[Exception], ...] = (EntityNotFound, ValidationError)
