"""Graph construction and run helpers for tests."""

from __future__ import annotations

from typing import Any

from wireboard import GraphDescriptor, RunLoop, StepKind


def make_graph(nodes: list[dict[str, Any]], edges: list[dict[str, Any]], **metadata: Any) -> GraphDescriptor:
    return GraphDescriptor.model_validate({"nodes": nodes, "edges": edges, **metadata})


async def collect_outputs(loop: RunLoop, inputs: dict[str, Any] | None = None) -> list[tuple[str, dict[str, Any]]]:
    outputs: list[tuple[str, dict[str, Any]]] = []
    async for result in loop.run():
        if result.kind is StepKind.INPUT:
            result.provide(inputs or {})
        elif result.kind is StepKind.OUTPUT:
            outputs.append((result.node.id, result.outputs))
    return outputs


def doubler_graph(**metadata: Any) -> GraphDescriptor:
    """input x -> double -> output y"""
    return make_graph(
        [
            {"id": "in", "type": "input"},
            {"id": "twice", "type": "double"},
            {"id": "out", "type": "output"},
        ],
        [
            {"from": "in", "to": "twice", "out": "x", "in": "x"},
            {"from": "twice", "to": "out", "out": "y", "in": "y"},
        ],
        **metadata,
    )
