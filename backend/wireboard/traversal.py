"""Step-by-step traversal state machine.

The stepper never runs handlers. Each `advance()` folds the previous visit's
outputs into the edge store and produces the next `Visit`; its inputs are
private copies, so handlers may mutate them without touching constant values
or node configuration. The caller is responsible for filling `Visit.outputs`
before advancing again.
"""

from __future__ import annotations

import copy
from collections import deque
from dataclasses import dataclass, field

from .edge_store import EdgeStore
from .graph_index import GraphIndex
from .schemas import ENTRY_SOURCE, Edge, InputValues, NodeDescriptor, OutputValues


@dataclass
class Visit:
    """One resolved traversal step for one node."""

    descriptor: NodeDescriptor
    inputs: InputValues
    missing_inputs: tuple[str, ...]
    opportunities: tuple[Edge, ...]
    new_opportunities: tuple[Edge, ...]
    incoming: tuple[Edge, ...]
    store: EdgeStore = field(repr=False)
    outputs: OutputValues | None = None

    @property
    def node_id(self) -> str:
        return self.descriptor.id

    @property
    def node_type(self) -> str:
        return self.descriptor.type

    @property
    def skip(self) -> bool:
        """True when the visit lacks required inputs and must not run."""
        return len(self.missing_inputs) > 0


class TraversalStepper:
    """Produces one `Visit` per `advance()` until no opportunities remain."""

    def __init__(self, index: GraphIndex, store: EdgeStore | None = None):
        self.index = index
        self.store = store or EdgeStore()
        self._opportunities: deque[Edge] = deque()
        self._cursor: Visit | None = None
        self._started = False
        self._done = False

    @property
    def current(self) -> Visit | None:
        return self._cursor

    @property
    def done(self) -> bool:
        return self._done

    def start(self) -> None:
        """Seed one synthetic opportunity per entry node."""
        if self._started:
            return
        self._started = True
        for entry_id in self.index.entry_ids:
            self._opportunities.append(Edge(from_=ENTRY_SOURCE, to=entry_id))

    def advance(self) -> Visit | None:
        """Move to the next visit, or return None once the run is complete."""
        if not self._started:
            self.start()
        if self._done:
            return None

        previous = self._cursor
        if previous is not None and not previous.skip:
            if previous.outputs is None:
                raise RuntimeError(
                    f"outputs of node {previous.node_id!r} must be resolved before advancing"
                )
            self.store.consume(previous.incoming)
            self.store.deliver(previous.node_id, previous.new_opportunities, previous.outputs)
            self._opportunities.extend(previous.new_opportunities)

        if not self._opportunities:
            self._cursor = None
            self._done = True
            return None

        opportunity = self._opportunities.popleft()
        descriptor = self.index.node(opportunity.to)
        incoming = self.index.incoming(descriptor.id)
        collected = self.store.collect(descriptor.id, incoming)
        missing = self.store.missing_required(incoming, collected, descriptor.configuration)

        self._cursor = Visit(
            descriptor=descriptor,
            inputs=copy.deepcopy({**descriptor.configuration, **collected}),
            missing_inputs=tuple(missing),
            opportunities=tuple(self._opportunities),
            new_opportunities=self.index.outgoing(descriptor.id),
            incoming=incoming,
            store=self.store,
        )
        return self._cursor
