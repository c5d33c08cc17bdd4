"""Run loop: drives the traversal stepper and dispatches node handlers.

Typical use::

    loop = RunLoop(graph, kits=[my_kit])
    async for result in loop.run():
        if result.kind is StepKind.INPUT:
            result.provide({"text": "hello"})
        elif result.kind is StepKind.OUTPUT:
            print(result.outputs)
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .bubble import InputResolver, RequestedInputs, bubble_up_inputs
from .core import Core
from .exceptions import EngineError, HandlerError, StepLimitExceeded
from .graph_index import GraphIndex
from .kits import HandlerRegistry, KitChain, KitLoader, call_handler
from .loader import GraphLoader
from .probe import Probe, ProbeEvent, ProbeEventType
from .schemas import GraphDescriptor, InputValues, NodeDescriptor, OutputValues
from .settings import get_settings
from .traversal import TraversalStepper, Visit

logger = logging.getLogger(__name__)

INPUT_NODE_TYPE = "input"
OUTPUT_NODE_TYPE = "output"


class StepKind(str, Enum):
    CONTINUE = "continue"
    INPUT = "input"
    OUTPUT = "output"
    END = "end"
    ERROR = "error"


@dataclass
class RunResult:
    """Outcome of one `RunLoop.step()`."""

    kind: StepKind
    run_id: str
    visit: Visit | None = None
    error: EngineError | None = None
    _provided: InputValues | None = field(default=None, repr=False)

    @property
    def node(self) -> NodeDescriptor | None:
        return self.visit.descriptor if self.visit else None

    @property
    def inputs(self) -> InputValues:
        return dict(self.visit.inputs) if self.visit else {}

    @property
    def outputs(self) -> OutputValues:
        """Values shown by an `output` node, or the resolved outputs of other visits."""
        if self.visit is None:
            return {}
        if self.kind is StepKind.OUTPUT:
            return dict(self.visit.inputs)
        return dict(self.visit.outputs or {})

    @property
    def provided(self) -> InputValues | None:
        return self._provided

    def provide(self, values: Mapping[str, Any]) -> None:
        """Supply values for an `input` result; they are applied on the next step."""
        if self.kind is not StepKind.INPUT:
            raise RuntimeError(f"cannot provide inputs to a {self.kind.value} result")
        self._provided = {**(self._provided or {}), **dict(values)}


@dataclass
class NodeHandlerContext:
    """Run-scoped collaborators handed to handlers that accept a context."""

    graph: GraphDescriptor
    outer_graph: GraphDescriptor
    base_url: str | None
    kits: list[HandlerRegistry]
    loader: GraphLoader
    requested: RequestedInputs
    run_id: str
    max_steps: int
    probe: Probe | None = None
    node: NodeDescriptor | None = None
    kit_imports: Mapping[str, HandlerRegistry] = field(default_factory=dict)

    async def request_input(self, name: str, schema: Mapping[str, Any]) -> Any:
        return await self.requested.request(name, schema)

    async def invoke_graph(
        self,
        graph: GraphDescriptor,
        inputs: Mapping[str, Any],
        *,
        slots: Mapping[str, GraphDescriptor] | None = None,
    ) -> OutputValues:
        """Run `graph` to its first output inside this run's context."""
        outer = graph if graph.graphs else self.outer_graph
        loop = RunLoop(
            graph,
            kits=self.kits,
            probe=self.probe,
            slots=slots,
            base_url=graph.url or self.base_url,
            outer_graph=outer,
            max_steps=self.max_steps,
            run_id=self.run_id,
            requested=self.requested,
            kit_imports=self.kit_imports,
        )
        return await loop.run_once(inputs)


class RunLoop:
    """Executes one graph, one visit per `step()`."""

    def __init__(
        self,
        graph: GraphDescriptor,
        *,
        kits: Sequence[HandlerRegistry] = (),
        probe: Probe | None = None,
        slots: Mapping[str, GraphDescriptor] | None = None,
        request_input: InputResolver | None = None,
        base_url: str | None = None,
        outer_graph: GraphDescriptor | None = None,
        kit_imports: Mapping[str, HandlerRegistry] | None = None,
        max_steps: int | None = None,
        run_id: str | None = None,
        requested: RequestedInputs | None = None,
    ):
        self.graph = graph
        self.run_id = run_id or uuid.uuid4().hex
        self.probe = probe
        self.max_steps = get_settings().run.max_steps if max_steps is None else max(0, max_steps)
        self.index = GraphIndex.build(graph)
        self.stepper = TraversalStepper(self.index)

        outer = outer_graph or graph
        base = graph.url or base_url
        extra_kits = list(kits)
        graph_kits = KitLoader(graph.kits, kit_imports).load()
        self.chain = KitChain([Core(graph, slots, outer).registry(), *extra_kits, *graph_kits])
        self.context = NodeHandlerContext(
            graph=graph,
            outer_graph=outer,
            base_url=base,
            kits=extra_kits,
            loader=GraphLoader(base, outer),
            requested=requested or RequestedInputs(request_input),
            run_id=self.run_id,
            max_steps=self.max_steps,
            probe=probe,
            kit_imports=dict(kit_imports or {}),
        )
        self._awaiting: RunResult | None = None
        self._steps = 0
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    async def step(self) -> RunResult:
        """Perform one visit and report what happened."""
        if self._finished:
            return RunResult(StepKind.END, self.run_id)
        try:
            if self._awaiting is not None:
                await self._resolve_input(self._awaiting)

            visit = self.stepper.advance()
            if visit is None:
                self._finished = True
                logger.info(
                    "run finished graph=%s steps=%s",
                    self.graph.label,
                    self._steps,
                    extra={"run_id": self.run_id},
                )
                return RunResult(StepKind.END, self.run_id)

            self._steps += 1
            if self.max_steps and self._steps > self.max_steps:
                raise StepLimitExceeded(self.max_steps)
            logger.debug(
                "visit node=%s type=%s skip=%s",
                visit.node_id,
                visit.node_type,
                visit.skip,
                extra={"run_id": self.run_id},
            )

            if visit.skip:
                await self._dispatch("skip", visit)
                return RunResult(StepKind.CONTINUE, self.run_id, visit)

            if visit.node_type == INPUT_NODE_TYPE:
                self._awaiting = RunResult(StepKind.INPUT, self.run_id, visit)
                return self._awaiting

            if visit.node_type == OUTPUT_NODE_TYPE:
                await self._dispatch("output", visit)
                visit.outputs = {}
                return RunResult(StepKind.OUTPUT, self.run_id, visit)

            await self._run_handler(visit)
            return RunResult(StepKind.CONTINUE, self.run_id, visit)
        except EngineError as exc:
            self._finished = True
            self._awaiting = None
            logger.warning(
                "run failed graph=%s error=%s",
                self.graph.label,
                exc,
                extra={"run_id": self.run_id},
            )
            return RunResult(StepKind.ERROR, self.run_id, error=exc)

    async def run(self) -> AsyncIterator[RunResult]:
        """Yield `input` and `output` results until the run ends; raise on error."""
        while True:
            result = await self.step()
            if result.kind is StepKind.CONTINUE:
                continue
            if result.kind is StepKind.ERROR:
                assert result.error is not None
                raise result.error
            if result.kind is StepKind.END:
                return
            yield result

    async def run_once(self, inputs: Mapping[str, Any] | None = None) -> OutputValues:
        """Run until the first output, answering every input with `inputs`.

        Arguments bound to the graph override supplied inputs.
        """
        supplied = {**dict(inputs or {}), **(self.graph.args or {})}
        while True:
            result = await self.step()
            if result.kind is StepKind.INPUT:
                result.provide(supplied)
            elif result.kind is StepKind.OUTPUT:
                return result.outputs
            elif result.kind is StepKind.ERROR:
                assert result.error is not None
                raise result.error
            elif result.kind is StepKind.END:
                return {}

    async def _resolve_input(self, pending: RunResult) -> None:
        self._awaiting = None
        visit = pending.visit
        assert visit is not None
        visit.outputs = await bubble_up_inputs(
            visit.inputs,
            pending.provided or {},
            self.context.requested,
            graph_title=self.graph.label,
            run_id=self.run_id,
        )
        await self._dispatch("input", visit, outputs=visit.outputs)

    async def _run_handler(self, visit: Visit) -> None:
        descriptor = visit.descriptor
        handler = self.chain.require(descriptor.type, node_id=descriptor.id)

        event = self._event("beforehandler", visit)
        proceed = await self.probe.dispatch(event) if self.probe else True
        if proceed:
            self.context.node = descriptor
            try:
                outputs = await call_handler(handler, visit.inputs, self.context)
            except EngineError:
                raise
            except Exception as exc:
                raise HandlerError(
                    f'Node "{descriptor.id}" of type "{descriptor.type}" failed: {exc}',
                    node_id=descriptor.id,
                    node_type=descriptor.type,
                ) from exc
        else:
            outputs = dict(event.outputs or {})
        visit.outputs = outputs
        await self._dispatch("node", visit, outputs=outputs)

    def _event(self, event_type: ProbeEventType, visit: Visit, outputs: Any = None) -> ProbeEvent:
        return ProbeEvent(
            type=event_type,
            descriptor=visit.descriptor,
            inputs=dict(visit.inputs),
            outputs=outputs,
            missing_inputs=visit.missing_inputs,
            run_id=self.run_id,
        )

    async def _dispatch(self, event_type: ProbeEventType, visit: Visit, outputs: Any = None) -> bool:
        if self.probe is None:
            return True
        return await self.probe.dispatch(self._event(event_type, visit, outputs))


async def run_graph_once(
    graph: GraphDescriptor,
    inputs: Mapping[str, Any] | None = None,
    **options: Any,
) -> OutputValues:
    """Convenience wrapper: build a RunLoop and return its first output."""
    return await RunLoop(graph, **options).run_once(inputs)


__all__ = [
    "INPUT_NODE_TYPE",
    "NodeHandlerContext",
    "OUTPUT_NODE_TYPE",
    "RunLoop",
    "RunResult",
    "StepKind",
    "run_graph_once",
]
