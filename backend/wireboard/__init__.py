"""Graph execution engine: nodes, wires, run loops and a proxy protocol."""

from .exceptions import (
    ConfigurationError,
    EngineError,
    HandlerError,
    MissingInputError,
    StepLimitExceeded,
    TransportError,
)
from .kits import HandlerRegistry, KitChain, KitLoader
from .loader import GraphLoader
from .probe import Probe, ProbeEvent
from .runner import NodeHandlerContext, RunLoop, RunResult, StepKind, run_graph_once
from .schemas import (
    BoardCapability,
    Edge,
    ErrorCapability,
    GraphDescriptor,
    KitDescriptor,
    NodeDescriptor,
)

__all__ = [
    "BoardCapability",
    "ConfigurationError",
    "Edge",
    "EngineError",
    "ErrorCapability",
    "GraphDescriptor",
    "GraphLoader",
    "HandlerError",
    "HandlerRegistry",
    "KitChain",
    "KitDescriptor",
    "KitLoader",
    "MissingInputError",
    "NodeDescriptor",
    "NodeHandlerContext",
    "Probe",
    "ProbeEvent",
    "RunLoop",
    "RunResult",
    "StepKind",
    "StepLimitExceeded",
    "TransportError",
    "run_graph_once",
]
