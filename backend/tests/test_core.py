from __future__ import annotations

import asyncio
import json

import pytest
import yaml

from helpers import collect_outputs, doubler_graph, make_graph
from wireboard import BoardCapability, GraphDescriptor, RunLoop
from wireboard.core import Core
from wireboard.exceptions import ConfigurationError, HandlerError, MissingInputError


def _wrap(node: dict, port: str = "y", **metadata) -> GraphDescriptor:
    return make_graph(
        [node, {"id": "out", "type": "output"}],
        [{"from": node["id"], "to": "out", "out": port, "in": port}],
        **metadata,
    )


def _run(graph: GraphDescriptor, kit, **options) -> list[tuple[str, dict]]:
    return asyncio.run(collect_outputs(RunLoop(graph, kits=[kit], **options)))


def _asker() -> GraphDescriptor:
    return make_graph(
        [
            {
                "id": "ask",
                "type": "input",
                "configuration": {
                    "schema": {
                        "type": "object",
                        "properties": {"name": {"type": "string"}},
                        "required": ["name"],
                    }
                },
            },
            {"id": "out", "type": "output"},
        ],
        [{"from": "ask", "to": "out", "out": "name", "in": "name"}],
        title="Asker",
    )


def test_reflect_returns_copy_of_running_graph(kit) -> None:
    graph = _wrap({"id": "r", "type": "reflect"}, "graph", title="Mirror")

    outputs = _run(graph, kit)

    assert outputs == [("out", {"graph": graph.to_wire()})]
    outputs[0][1]["graph"]["title"] = "changed"
    assert graph.title == "Mirror"


def test_invoke_runs_inline_graph(kit) -> None:
    graph = _wrap({"id": "inv", "type": "invoke", "configuration": {"graph": doubler_graph().to_wire(), "x": 2}})

    assert _run(graph, kit) == [("out", {"y": 4})]


def test_invoke_resolves_path_relative_to_graph_url(kit, tmp_path) -> None:
    (tmp_path / "inner.json").write_text(doubler_graph().to_json(), encoding="utf-8")
    graph = _wrap(
        {"id": "inv", "type": "invoke", "configuration": {"path": "inner.json", "x": 3}},
        url=str(tmp_path / "outer.json"),
    )

    assert _run(graph, kit) == [("out", {"y": 6})]


def test_invoke_without_board_fails(kit) -> None:
    graph = _wrap({"id": "inv", "type": "invoke"})

    with pytest.raises(ConfigurationError, match="No board provided"):
        _run(graph, kit)


def test_include_loads_yaml_reference(kit, tmp_path) -> None:
    (tmp_path / "inner.yaml").write_text(yaml.safe_dump(doubler_graph().to_wire()), encoding="utf-8")
    graph = _wrap(
        {"id": "inc", "type": "include", "configuration": {"$ref": "inner.yaml", "x": 5}},
        url=str(tmp_path / "outer.json"),
    )

    assert _run(graph, kit) == [("out", {"y": 10})]


def test_include_resolves_named_subgraph(kit) -> None:
    graph = _wrap(
        {"id": "inc", "type": "include", "configuration": {"$ref": "#doubler", "x": 1}},
        graphs={"doubler": doubler_graph().to_wire()},
    )

    assert _run(graph, kit) == [("out", {"y": 2})]


def test_unknown_subgraph_name_fails(kit) -> None:
    graph = _wrap({"id": "inc", "type": "include", "configuration": {"$ref": "#nowhere"}})

    with pytest.raises(ConfigurationError, match="no sub-graph named 'nowhere'"):
        _run(graph, kit)


def test_include_fills_slots_of_included_graph(kit) -> None:
    holder = make_graph(
        [
            {"id": "in", "type": "input"},
            {"id": "s", "type": "slot", "configuration": {"slot": "worker"}},
            {"id": "out", "type": "output"},
        ],
        [
            {"from": "in", "to": "s", "out": "x", "in": "x"},
            {"from": "s", "to": "out", "out": "y", "in": "y"},
        ],
    )
    graph = _wrap(
        {
            "id": "inc",
            "type": "include",
            "configuration": {
                "graph": holder.to_wire(),
                "slotted": {"worker": doubler_graph().to_wire()},
                "x": 4,
            },
        }
    )

    assert _run(graph, kit) == [("out", {"y": 8})]


def test_undeclared_slot_fails(kit) -> None:
    graph = _wrap({"id": "s", "type": "slot", "configuration": {"slot": "worker"}})

    with pytest.raises(ConfigurationError, match='No graph found for slot "worker"'):
        _run(graph, kit)


def test_lambda_binds_arguments_that_override_invoke_inputs(kit) -> None:
    capability = {"kind": "board", "board": doubler_graph().to_wire()}
    graph = make_graph(
        [
            {"id": "l", "type": "lambda", "configuration": {"board": capability, "x": 7}},
            {"id": "inv", "type": "invoke", "configuration": {"x": 1}},
            {"id": "out", "type": "output"},
        ],
        [
            {"from": "l", "to": "inv", "out": "board", "in": "board"},
            {"from": "inv", "to": "out", "out": "y", "in": "y"},
        ],
    )

    assert _run(graph, kit) == [("out", {"y": 14})]


def test_lambda_copies_bound_arguments() -> None:
    source = [1, 2]
    core = Core(make_graph([], []))

    outputs = core.lambda_({"board": BoardCapability(board=doubler_graph()), "items": source})
    source.append(3)

    assert outputs["board"].args == {"items": [1, 2]}


def test_lambda_without_board_fails(kit) -> None:
    graph = _wrap({"id": "l", "type": "lambda"}, "board")

    with pytest.raises(HandlerError, match='requires a BoardCapability as "board" input'):
        _run(graph, kit)


def test_import_builds_capability_without_running_it(kit, tmp_path) -> None:
    (tmp_path / "inner.json").write_text(json.dumps(doubler_graph().to_wire()), encoding="utf-8")
    graph = make_graph(
        [
            {"id": "imp", "type": "import", "configuration": {"path": "inner.json", "x": 5}},
            {"id": "inv", "type": "invoke"},
            {"id": "out", "type": "output"},
        ],
        [
            {"from": "imp", "to": "inv", "out": "board", "in": "board"},
            {"from": "inv", "to": "out", "out": "y", "in": "y"},
        ],
        url=str(tmp_path / "outer.json"),
    )

    assert _run(graph, kit) == [("out", {"y": 10})]


def test_nested_inputs_bubble_to_outer_resolver_once(kit) -> None:
    calls: list[tuple[str, dict]] = []

    def resolver(name: str, schema: dict) -> str:
        calls.append((name, schema))
        return "Ada"

    asker = _asker().to_wire()
    graph = make_graph(
        [
            {"id": "first", "type": "invoke", "configuration": {"graph": asker}},
            {"id": "second", "type": "invoke", "configuration": {"graph": asker}},
            {"id": "out1", "type": "output"},
            {"id": "out2", "type": "output"},
        ],
        [
            {"from": "first", "to": "out1", "out": "name", "in": "name"},
            {"from": "second", "to": "out2", "out": "name", "in": "name"},
        ],
    )

    outputs = _run(graph, kit, request_input=resolver)

    assert sorted(outputs) == [("out1", {"name": "Ada"}), ("out2", {"name": "Ada"})]
    assert calls == [("name", {"type": "string"})]


def test_nested_missing_input_names_inner_graph(kit) -> None:
    graph = _wrap({"id": "inv", "type": "invoke", "configuration": {"graph": _asker().to_wire()}}, "name")

    with pytest.raises(MissingInputError, match='Missing required input "name" for graph "Asker"'):
        _run(graph, kit)
