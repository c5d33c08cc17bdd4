"""Built-in node types available to every run."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from .exceptions import ConfigurationError, HandlerError
from .kits import HandlerRegistry
from .schemas import BoardCapability, GraphDescriptor, InputValues, OutputValues, as_capability

if TYPE_CHECKING:
    from .runner import NodeHandlerContext

CORE_KIT_URL = "core"
CORE_NODE_TYPES = ("lambda", "import", "include", "invoke", "reflect", "slot", "passthrough")


def _as_graph(value: Any) -> GraphDescriptor:
    if isinstance(value, GraphDescriptor):
        return value.deep_copy()
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"expected a graph, got {type(value).__name__}")
    try:
        return GraphDescriptor.model_validate(dict(value))
    except ValidationError as exc:
        raise ConfigurationError(f"invalid graph: {exc}") from exc


def _as_board(value: Any, node_type: str) -> BoardCapability:
    capability = as_capability(value)
    if not isinstance(capability, BoardCapability):
        raise HandlerError(
            f'{node_type.capitalize()} node requires a BoardCapability as "board" input',
            node_type=node_type,
        )
    return capability


class Core:
    """Handlers for the core node types, bound to the graph being run."""

    def __init__(
        self,
        graph: GraphDescriptor,
        slots: Mapping[str, GraphDescriptor] | None = None,
        outer_graph: GraphDescriptor | None = None,
    ):
        self.graph = graph
        self.slots = dict(slots or {})
        self.outer_graph = outer_graph or graph

    def registry(self) -> HandlerRegistry:
        # `lambda` and `import` are keywords, hence the trailing underscore.
        return HandlerRegistry(
            CORE_KIT_URL,
            {
                "lambda": self.lambda_,
                "import": self.import_,
                "include": self.include,
                "invoke": self.invoke,
                "reflect": self.reflect,
                "slot": self.slot,
                "passthrough": self.passthrough,
            },
        )

    def passthrough(self, inputs: InputValues) -> OutputValues:
        return dict(inputs)

    def reflect(self, inputs: InputValues) -> OutputValues:
        return {"graph": self.graph.to_wire()}

    def lambda_(self, inputs: InputValues) -> OutputValues:
        args = dict(inputs)
        capability = _as_board(args.pop("board", None), "lambda")
        return {"board": capability.bind(args)}

    async def import_(self, inputs: InputValues, context: NodeHandlerContext) -> OutputValues:
        args = dict(inputs)
        path = args.pop("path", None)
        ref = args.pop("$ref", None)
        graph = args.pop("graph", None)
        if graph is not None:
            board = _as_graph(graph)
        else:
            board = await context.loader.load(path or ref or "")
        return {"board": BoardCapability(board=board).bind(args)}

    async def invoke(self, inputs: InputValues, context: NodeHandlerContext) -> OutputValues:
        args = dict(inputs)
        board = args.pop("board", None)
        graph = args.pop("graph", None)
        path = args.pop("path", None)
        if board is not None:
            runnable = _as_board(board, "invoke").board.deep_copy()
        elif graph is not None:
            runnable = _as_graph(graph)
        elif path:
            runnable = await context.loader.load(path)
        else:
            raise ConfigurationError("No board provided", details={"graph": self.graph.label})
        return await context.invoke_graph(runnable, args)

    async def include(self, inputs: InputValues, context: NodeHandlerContext) -> OutputValues:
        args = dict(inputs)
        path = args.pop("path", None)
        ref = args.pop("$ref", None)
        board = args.pop("board", None)
        graph = args.pop("graph", None)
        slotted = args.pop("slotted", None) or {}

        slots: dict[str, GraphDescriptor] = {}
        for name, slotted_graph in dict(slotted).items():
            resolved = _as_graph(slotted_graph)
            if resolved.url is None:
                resolved.url = self.graph.url
            slots[name] = resolved

        if board is not None:
            runnable = _as_board(board, "include").board.deep_copy()
        elif graph is not None:
            runnable = _as_graph(graph)
        else:
            runnable = await context.loader.load(path or ref or "")
        return await context.invoke_graph(runnable, args, slots=slots)

    async def slot(self, inputs: InputValues, context: NodeHandlerContext) -> OutputValues:
        args = dict(inputs)
        name = args.pop("slot", None)
        if not name:
            raise ConfigurationError("To use a slot, we need to specify its name")
        graph = self.slots.get(name)
        if graph is None:
            raise ConfigurationError(f'No graph found for slot "{name}"', details={"slot": name})
        return await context.invoke_graph(graph.deep_copy(), args)


__all__ = ["CORE_KIT_URL", "CORE_NODE_TYPES", "Core"]
