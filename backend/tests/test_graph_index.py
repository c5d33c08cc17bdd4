from __future__ import annotations

import pytest

from helpers import make_graph
from wireboard.exceptions import ConfigurationError
from wireboard.graph_index import GraphIndex


def test_entry_nodes_keep_declaration_order() -> None:
    graph = make_graph(
        [{"id": "b", "type": "noop"}, {"id": "a", "type": "noop"}, {"id": "c", "type": "noop"}],
        [{"from": "a", "to": "c", "out": "v", "in": "v"}],
    )

    index = GraphIndex.build(graph)

    assert index.entry_ids == ("b", "a")
    assert [edge.to for edge in index.outgoing("a")] == ["c"]
    assert [edge.from_ for edge in index.incoming("c")] == ["a"]
    assert index.incoming("a") == ()
    assert index.node("c").type == "noop"


def test_graph_without_entry_node_cannot_start() -> None:
    graph = make_graph(
        [{"id": "a", "type": "noop"}, {"id": "b", "type": "noop"}],
        [{"from": "a", "to": "b"}, {"from": "b", "to": "a"}],
    )

    with pytest.raises(ConfigurationError, match="no entry node"):
        GraphIndex.build(graph)


def test_dangling_edge_is_rejected() -> None:
    graph = make_graph([{"id": "a", "type": "noop"}], [{"from": "a", "to": "ghost"}])

    with pytest.raises(ConfigurationError, match="dangling edge") as excinfo:
        GraphIndex.build(graph)
    assert excinfo.value.details["node"] == "ghost"


def test_duplicate_node_id_is_rejected() -> None:
    graph = make_graph([{"id": "a", "type": "noop"}, {"id": "a", "type": "double"}], [])

    with pytest.raises(ConfigurationError, match="duplicate node id"):
        GraphIndex.build(graph)


def test_unknown_node_lookup_raises() -> None:
    index = GraphIndex.build(make_graph([{"id": "a", "type": "noop"}], []))

    with pytest.raises(ConfigurationError):
        index.node("missing")
