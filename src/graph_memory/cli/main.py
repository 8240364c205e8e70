from __future__ import annotations

import argparse
import json
from typing import Any

from graph_memory.settings import settings


def _configure_logging() -> None:
    import logging

    level = (settings.log_level or "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _manager():
    from graph_memory.knowledge_graph import create_manager

    # Commands are one-shot, so probe inline before reporting.
    manager = create_manager(settings, probe=False)
    manager.orchestrator.verify_connectivity()
    return manager


def cmd_version() -> int:
    from graph_memory import __version__

    print(__version__)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    _configure_logging()
    from graph_memory.service.server import serve

    serve(settings, host=args.host, port=args.port)
    return 0


def cmd_status(_args: argparse.Namespace) -> int:
    _configure_logging()
    manager = _manager()
    try:
        _print_json(manager.get_storage_status().to_dict())
    finally:
        manager.close()
    return 0


def cmd_summary(_args: argparse.Namespace) -> int:
    _configure_logging()
    manager = _manager()
    try:
        _print_json(manager.get_graph_summary().to_dict())
    finally:
        manager.close()
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    _configure_logging()
    manager = _manager()
    try:
        report = manager.migrate_file_to_primary(
            dry_run=args.dry_run, conflict_resolution=args.conflict_resolution
        )
    finally:
        manager.close()
    _print_json(report.to_dict())
    return 0 if report.success else 1


def cmd_check_duplicates(_args: argparse.Namespace) -> int:
    from graph_memory.knowledge_graph.errors import BackendUnavailable

    _configure_logging()
    manager = _manager()
    try:
        duplicates = manager.find_duplicates()
    except BackendUnavailable as e:
        print(f"error: {e}")
        return 1
    finally:
        manager.close()
    _print_json(duplicates)
    return 0


def build_parser() -> argparse.ArgumentParser:
    from graph_memory.knowledge_graph.migration import CONFLICT_RESOLUTIONS

    p = argparse.ArgumentParser(prog="graph-memory")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("version").set_defaults(func=lambda _a: cmd_version())

    srv = sub.add_parser("serve", help="Run the HTTP API")
    srv.add_argument("--host", default=None)
    srv.add_argument("--port", type=int, default=None)
    srv.set_defaults(func=cmd_serve)

    sub.add_parser("status", help="Print the storage status report").set_defaults(func=cmd_status)
    sub.add_parser("summary", help="Print entity/relation counts").set_defaults(func=cmd_summary)

    mig = sub.add_parser("migrate", help="Copy the fallback file into Neo4j")
    mig.add_argument("--dry-run", action="store_true")
    mig.add_argument("--conflict-resolution", choices=list(CONFLICT_RESOLUTIONS), default="merge")
    mig.set_defaults(func=cmd_migrate)

    sub.add_parser("check-duplicates", help="Report duplicate entities and relations in Neo4j").set_defaults(
        func=cmd_check_duplicates
    )

    return p


def app(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    rc = args.func(args)
    raise SystemExit(rc)


if __name__ == "__main__":
    app()
