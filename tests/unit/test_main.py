import json

import pytest

from config.settings import load_settings
from main import build_parser, main


def _write_graph(path, graph):
    path.write_text(json.dumps(graph), encoding="utf-8")
    return path


# ============================================================================
# Settings
# ============================================================================


def test_settings_defaults():
    settings = load_settings()
    assert settings.modules_dir == "modules"
    assert settings.emitted_dir == "emitted"
    assert settings.output_format == "json"
    assert settings.log_level == "INFO"


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("GRAPH_MODULES_DIR", "/schemas")
    monkeypatch.setenv("GRAPH_OUTPUT_FORMAT", "YAML")
    settings = load_settings()
    assert settings.modules_dir == "/schemas"
    assert settings.output_format == "yaml"


def test_parser_uses_settings(monkeypatch):
    monkeypatch.setenv("GRAPH_EMITTED_DIR", "out")
    args = build_parser().parse_args(["run", "--graph", "g.json"])
    assert args.emitted_dir == "out"
    assert args.project_dir == "."


# ============================================================================
# Commands
# ============================================================================


def test_check(modules_dir, capsys):
    assert main(["check", "--modules", str(modules_dir)]) == 0
    out = capsys.readouterr().out
    assert "eh v1.0: 7 types" in out
    assert "sys v1: 1 types" in out


def test_check_reports_schema_errors(tmp_path, capsys):
    (tmp_path / "bad.yaml").write_text("module: bad\ntypes:\n  - {kind: struct, name: A, fields: [{name: x, type: Nope}]}\n")
    assert main(["check", "--modules", str(tmp_path)]) == 1
    assert "unknown type `bad:Nope`" in capsys.readouterr().err


def test_nodes(capsys):
    assert main(["nodes"]) == 0
    contracts = json.loads(capsys.readouterr().out)
    assert "GetField" in [c["type"] for c in contracts]


def test_run(modules_dir, project_dir, capsys):
    graph = {
        "nodes": [
            {"id": 1, "type": "Value", "state": {"type": "eh:Stats", "value": {"hp": 5}}},
            {"id": 2, "type": "GetField", "state": {"field": "hp"}},
        ],
        "links": [{"origin_id": 1, "origin_port": "value", "target_id": 2, "target_port": "object"}],
    }
    graph_path = _write_graph(project_dir / "stats.json", graph)

    code = main(
        ["run", "--modules", str(modules_dir), "--graph", str(graph_path), "--project-dir", str(project_dir)]
    )
    assert code == 0
    outputs = json.loads(capsys.readouterr().out)
    assert outputs["1"] == {"value": {"hp": 5, "speed": 0.0}}
    assert outputs["2"] == {"value": 5}


def test_run_node_failure_exits_nonzero(modules_dir, project_dir, capsys):
    graph = {"nodes": [{"id": 1, "type": "GetField", "state": {"field": "hp"}}], "links": []}
    graph_path = _write_graph(project_dir / "broken.json", graph)
    code = main(["run", "--modules", str(modules_dir), "--graph", str(graph_path), "--project-dir", str(project_dir)])
    assert code == 1
    assert "Missing input 'object'" in capsys.readouterr().err


def test_run_missing_graph(modules_dir, project_dir, capsys):
    code = main(["run", "--modules", str(modules_dir), "--graph", str(project_dir / "nope.json")])
    assert code == 1
    assert "Failed to read graph" in capsys.readouterr().err


def test_run_yaml_graph(modules_dir, project_dir, capsys):
    graph_path = project_dir / "stats.yaml"
    graph_path.write_text(
        "nodes:\n"
        "  - {id: 1, type: Value, state: {type: int, value: 4}}\n"
        "  - {id: 2, type: Expression, state: {expression: x + 1}}\n"
        "links:\n"
        "  - {origin_id: 1, origin_port: value, target_id: 2, target_port: x}\n",
        encoding="utf-8",
    )
    code = main(["run", "--modules", str(modules_dir), "--graph", str(graph_path), "--project-dir", str(project_dir)])
    assert code == 0
    assert json.loads(capsys.readouterr().out)["2"] == {"value": 5.0}


def test_run_graph_must_be_a_mapping(modules_dir, project_dir, capsys):
    graph_path = project_dir / "list.yaml"
    graph_path.write_text("- 1\n- 2\n", encoding="utf-8")
    code = main(["run", "--modules", str(modules_dir), "--graph", str(graph_path)])
    assert code == 1
    assert "document must be a mapping" in capsys.readouterr().err
