from __future__ import annotations

import uvicorn

from graph_memory.knowledge_graph import create_manager
from graph_memory.settings import GraphMemorySettings, settings as default_settings

from .app import create_app


def serve(settings: GraphMemorySettings | None = None, *, host: str | None = None, port: int | None = None) -> None:
    settings = settings or default_settings
    manager = create_manager(settings)
    app = create_app(manager, api_key=settings.api_key)

    config = uvicorn.Config(
        app,
        host=host or settings.bind_host,
        port=port or settings.bind_port,
        log_level=(settings.log_level or "info").lower(),
    )
    uvicorn.Server(config).run()


def main() -> None:
    serve()


if __name__ == "__main__":
    main()
