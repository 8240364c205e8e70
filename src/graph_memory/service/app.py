from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from graph_memory import __version__
from graph_memory.knowledge_graph import KnowledgeGraphManager
from graph_memory.knowledge_graph.errors import (
    EntityNotFound,
    KnowledgeGraphError,
    ValidationError,
)

from .graph_api import build_graph_router

logger = logging.getLogger(__name__)


def _status_for(exc: KnowledgeGraphError) -> int:
    if isinstance(exc, EntityNotFound):
        return 404
    if isinstance(exc, ValidationError):
        return 422
    return 500


def create_app(manager: KnowledgeGraphManager, *, api_key: str | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        try:
            yield
        finally:
            manager.close()

    app = FastAPI(title="Graph Memory", version=__version__, lifespan=lifespan)

    @app.exception_handler(KnowledgeGraphError)
    async def graph_error(_request: Request, exc: KnowledgeGraphError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.error("Graph operation failed: %s", exc.message)
        return JSONResponse(status_code=status, content=exc.to_dict())

    @app.get("/health")
    async def health():
        status = manager.get_storage_status()
        return {
            "ok": True,
            "host": os.uname().nodename,
            "backend": status.current_backend,
            "connectionHealth": status.connection_health,
        }

    app.include_router(build_graph_router(manager, api_key=api_key))
    return app
