"""JSON and graph export tests."""

from __future__ import annotations

import json
from pathlib import Path

from nodedeps.export import build_dependency_graph, export_graph_json, export_json
from nodedeps.resolvers.base import Dependency, ResolutionResult


def _result() -> ResolutionResult:
    return ResolutionResult(
        tool="npm",
        tool_version="9.8.1",
        root_id="app:1.0.0",
        dependencies=[
            Dependency(id="a:1.0.0", scopes=["prod"], requested_by=[["app:1.0.0"]], checksums={"sha1": "aa"}),
            Dependency(
                id="b:2.0.0",
                scopes=["dev", "prod"],
                requested_by=[["a:1.0.0", "app:1.0.0"], ["x:1.0.0", "app:1.0.0"]],
                checksums={"sha1": "bb"},
            ),
        ],
        missing_peer=["c:1.0.0"],
    )


def test_export_json(tmp_path: Path) -> None:
    output = tmp_path / "out" / "deps.json"

    export_json(_result(), output)

    data = json.loads(output.read_text(encoding="utf-8"))
    assert data["id"] == "app:1.0.0"
    assert data["toolVersion"] == "9.8.1"
    assert data["dependencies"][1] == {
        "id": "b:2.0.0",
        "scopes": ["dev", "prod"],
        "requestedBy": [["a:1.0.0", "app:1.0.0"], ["x:1.0.0", "app:1.0.0"]],
        "sha1": "bb",
    }
    assert data["missing"]["peer"] == ["c:1.0.0"]


def test_build_dependency_graph_edges() -> None:
    graph = build_dependency_graph(_result())

    assert set(graph.edges) == {
        ("app:1.0.0", "a:1.0.0"),
        ("a:1.0.0", "b:2.0.0"),
        ("app:1.0.0", "x:1.0.0"),
        ("x:1.0.0", "b:2.0.0"),
    }
    assert graph.nodes["app:1.0.0"]["root"] is True
    assert graph.nodes["x:1.0.0"]["excluded"] is True
    assert graph.nodes["b:2.0.0"]["checksums"] == {"sha1": "bb"}


def test_export_graph_json(tmp_path: Path) -> None:
    output = tmp_path / "graph.json"

    export_graph_json(build_dependency_graph(_result()), output)

    data = json.loads(output.read_text(encoding="utf-8"))
    assert data["directed"] is True
    assert {n["id"] for n in data["nodes"]} == {"app:1.0.0", "a:1.0.0", "b:2.0.0", "x:1.0.0"}
    assert len(data["edges"]) == 4
