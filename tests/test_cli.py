from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from graph_memory import __version__
from graph_memory.cli.main import app, build_parser
from graph_memory.knowledge_graph import Entity, FileGraphStore
from graph_memory.settings import GraphMemorySettings


@pytest.fixture
def cli_settings(tmp_path, monkeypatch):
    for key in ("NEO4J_URI", "NEO4J_USER", "NEO4J_PASSWORD"):
        monkeypatch.delenv(key, raising=False)
    s = GraphMemorySettings(memory_file_path=str(tmp_path / "m.jsonl"))
    with patch("graph_memory.cli.main.settings", s):
        yield s


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        app(["version"])
    assert exc.value.code == 0
    assert capsys.readouterr().out.strip() == __version__


def test_migrate_options_parse():
    args = build_parser().parse_args(["migrate", "--dry-run", "--conflict-resolution", "skip"])
    assert args.dry_run is True
    assert args.conflict_resolution == "skip"


def test_summary_reads_fallback_file(cli_settings, capsys):
    FileGraphStore(cli_settings.memory_file_path).create_entities([Entity("A", "person", [])])
    with pytest.raises(SystemExit):
        app(["summary"])
    assert json.loads(capsys.readouterr().out) == {"entityCount": 1, "relationCount": 0, "entityTypes": ["person"]}


def test_status_without_neo4j(cli_settings, capsys):
    with pytest.raises(SystemExit):
        app(["status"])
    status = json.loads(capsys.readouterr().out)
    assert status["currentBackend"] == "file"
    assert status["connectionHealth"] == "unavailable"


def test_migrate_without_neo4j_fails(cli_settings, capsys):
    with pytest.raises(SystemExit) as exc:
        app(["migrate"])
    assert exc.value.code == 1
    assert "Cannot migrate: Neo4j is not available" in capsys.readouterr().out
