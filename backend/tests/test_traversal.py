from __future__ import annotations

import pytest

from helpers import make_graph
from wireboard.graph_index import GraphIndex
from wireboard.schemas import ENTRY_SOURCE
from wireboard.traversal import TraversalStepper


def _chain():
    return make_graph(
        [
            {"id": "a", "type": "passthrough", "configuration": {"v": 1}},
            {"id": "b", "type": "passthrough"},
            {"id": "c", "type": "passthrough"},
        ],
        [
            {"from": "a", "to": "b", "out": "v", "in": "v"},
            {"from": "b", "to": "c", "out": "v", "in": "v"},
        ],
    )


def test_stepper_visits_chain_in_topological_order() -> None:
    stepper = TraversalStepper(GraphIndex.build(_chain()))
    visited = []

    visit = stepper.advance()
    while visit is not None:
        assert not visit.skip
        visited.append((visit.node_id, visit.inputs))
        visit.outputs = dict(visit.inputs)
        visit = stepper.advance()

    assert visited == [("a", {"v": 1}), ("b", {"v": 1}), ("c", {"v": 1})]
    assert stepper.done
    assert stepper.advance() is None


def test_entry_visit_is_seeded_from_synthetic_source() -> None:
    stepper = TraversalStepper(GraphIndex.build(_chain()))
    stepper.start()

    visit = stepper.advance()

    assert visit is stepper.current
    assert visit.node_id == "a"
    assert visit.opportunities == ()
    assert [edge.to for edge in visit.new_opportunities] == ["b"]
    assert all(edge.from_ != ENTRY_SOURCE for edge in visit.incoming)


def test_advancing_before_outputs_are_resolved_fails() -> None:
    stepper = TraversalStepper(GraphIndex.build(_chain()))
    stepper.advance()

    with pytest.raises(RuntimeError, match="must be resolved"):
        stepper.advance()


def test_skipped_visit_leaves_queued_values_in_place() -> None:
    graph = make_graph(
        [
            {"id": "a", "type": "passthrough"},
            {"id": "b", "type": "passthrough"},
            {"id": "join", "type": "passthrough"},
        ],
        [
            {"from": "a", "to": "join", "out": "x", "in": "x"},
            {"from": "b", "to": "join", "out": "y", "in": "y"},
        ],
    )
    stepper = TraversalStepper(GraphIndex.build(graph))

    first = stepper.advance()
    first.outputs = {"x": 1}
    second = stepper.advance()
    second.outputs = {}
    join = stepper.advance()

    assert join.node_id == "join"
    assert join.skip
    assert join.missing_inputs == ("y",)
    again = stepper.advance()
    assert again.node_id == "join"
    assert again.skip
    assert stepper.advance() is None
    assert stepper.store.pending(join.incoming[0]) == 1


def test_wired_inputs_override_configuration() -> None:
    graph = make_graph(
        [
            {"id": "a", "type": "passthrough", "configuration": {"v": "wired"}},
            {"id": "b", "type": "passthrough", "configuration": {"v": "configured", "w": 1}},
        ],
        [{"from": "a", "to": "b", "out": "v", "in": "v"}],
    )
    stepper = TraversalStepper(GraphIndex.build(graph))
    visit = stepper.advance()
    visit.outputs = dict(visit.inputs)

    visit = stepper.advance()

    assert visit.inputs == {"v": "wired", "w": 1}
