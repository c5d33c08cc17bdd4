"""Per-edge value queues with constant-edge retention."""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, Iterable, Mapping, Sequence

from .schemas import ALL_OUTPUTS, Edge, InputValues

EdgeKey = tuple[str, "str | None", str, "str | None"]


class EdgeStore:
    """
    Holds values that travelled along edges but were not consumed yet.

    Each edge owns a FIFO queue; constant edges own a single slot that is
    overwritten on delivery and never removed. A queued value is handed to
    exactly one consuming visit.
    """

    def __init__(self) -> None:
        self._queues: dict[EdgeKey, deque[Any]] = defaultdict(deque)
        self._constants: dict[EdgeKey, Any] = {}

    def deliver(self, source_id: str, edges: Iterable[Edge], outputs: Mapping[str, Any] | None) -> None:
        """Route `outputs` of `source_id` onto its outgoing `edges`."""
        if not outputs:
            return
        for edge in edges:
            if edge.from_ != source_id or not edge.out:
                continue
            if edge.out == ALL_OUTPUTS:
                value: Any = {key: item for key, item in outputs.items() if item is not None}
                if not value:
                    continue
            else:
                value = outputs.get(edge.out)
                if value is None:
                    continue
            if edge.constant:
                self._constants[edge.key] = value
            else:
                self._queues[edge.key].append(value)

    def collect(self, target_id: str, incoming_edges: Sequence[Edge]) -> InputValues:
        """Assemble available inputs for `target_id` without consuming them.

        Edges are applied in declaration order, so a later edge wins when two
        edges feed the same input name.
        """
        inputs: InputValues = {}
        for edge in incoming_edges:
            if edge.to != target_id or not edge.out:
                continue
            found, value = self._peek(edge)
            if not found:
                continue
            if edge.out == ALL_OUTPUTS:
                inputs.update(value)
            elif edge.in_:
                inputs[edge.in_] = value
        return inputs

    def consume(self, incoming_edges: Sequence[Edge]) -> None:
        """Pop the queued values a completed visit used. Constants stay."""
        for edge in incoming_edges:
            if edge.constant:
                continue
            queue = self._queues.get(edge.key)
            if queue:
                queue.popleft()

    @staticmethod
    def missing_required(
        incoming_edges: Sequence[Edge],
        inputs: Mapping[str, Any],
        node_config: Mapping[str, Any] | None,
    ) -> list[str]:
        """Return required input names satisfied neither by wires nor configuration."""
        configured = node_config or {}
        required: list[str] = []
        for edge in incoming_edges:
            if edge.optional or not edge.in_ or edge.in_ in required:
                continue
            required.append(edge.in_)
        return [name for name in required if name not in inputs and name not in configured]

    def pending(self, edge: Edge) -> int:
        """Number of queued values on `edge` (1 for a filled constant slot)."""
        if edge.constant:
            return 1 if edge.key in self._constants else 0
        return len(self._queues.get(edge.key, ()))

    def _peek(self, edge: Edge) -> tuple[bool, Any]:
        if edge.key in self._constants:
            return True, self._constants[edge.key]
        queue = self._queues.get(edge.key)
        if queue:
            return True, queue[0]
        return False, None
