"""Static adjacency tables for a graph descriptor."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from .exceptions import ConfigurationError
from .schemas import Edge, GraphDescriptor, NodeDescriptor


@dataclass(frozen=True)
class GraphIndex:
    """Nodes and edges keyed by node id; built once per run and never mutated."""

    by_id: Mapping[str, NodeDescriptor]
    incoming_by_target: Mapping[str, tuple[Edge, ...]]
    outgoing_by_source: Mapping[str, tuple[Edge, ...]]
    entry_ids: tuple[str, ...]

    @classmethod
    def build(cls, graph: GraphDescriptor) -> "GraphIndex":
        by_id: dict[str, NodeDescriptor] = {}
        for node in graph.nodes:
            if node.id in by_id:
                raise ConfigurationError(
                    f"duplicate node id {node.id!r}",
                    details={"node": node.id},
                )
            by_id[node.id] = node

        incoming: dict[str, list[Edge]] = {node_id: [] for node_id in by_id}
        outgoing: dict[str, list[Edge]] = {node_id: [] for node_id in by_id}
        for edge in graph.edges:
            for endpoint in (edge.from_, edge.to):
                if endpoint not in by_id:
                    raise ConfigurationError(
                        f"dangling edge {edge.from_!r} -> {edge.to!r}: unknown node {endpoint!r}",
                        details={"from": edge.from_, "to": edge.to, "node": endpoint},
                    )
            outgoing[edge.from_].append(edge)
            incoming[edge.to].append(edge)

        entry_ids = tuple(node_id for node_id in by_id if not incoming[node_id])
        if not entry_ids:
            raise ConfigurationError(
                "no entry node",
                details={"graph": graph.label},
            )

        return cls(
            by_id=MappingProxyType(by_id),
            incoming_by_target=MappingProxyType(
                {node_id: tuple(edges) for node_id, edges in incoming.items()}
            ),
            outgoing_by_source=MappingProxyType(
                {node_id: tuple(edges) for node_id, edges in outgoing.items()}
            ),
            entry_ids=entry_ids,
        )

    def node(self, node_id: str) -> NodeDescriptor:
        descriptor = self.by_id.get(node_id)
        if descriptor is None:
            raise ConfigurationError(f"no node found for id {node_id!r}", details={"node": node_id})
        return descriptor

    def incoming(self, node_id: str) -> tuple[Edge, ...]:
        return self.incoming_by_target.get(node_id, ())

    def outgoing(self, node_id: str) -> tuple[Edge, ...]:
        return self.outgoing_by_source.get(node_id, ())
