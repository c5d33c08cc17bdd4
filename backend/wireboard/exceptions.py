"""Engine exception types shared across modules."""

from __future__ import annotations

from typing import Any, Mapping


class EngineError(Exception):
    """Base class for graph execution failures."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None):
        super().__init__(message)
        self.details = dict(details or {})


class ConfigurationError(EngineError):
    """Raised when a graph cannot be wired or a node cannot be resolved."""


class MissingInputError(EngineError):
    """Raised when a required input cannot be supplied for a run."""

    def __init__(self, input_name: str, *, graph_title: str | None = None):
        self.input_name = input_name
        self.graph_title = graph_title
        suffix = f' for graph "{graph_title}".' if graph_title else "."
        super().__init__(
            f'Missing required input "{input_name}"{suffix}',
            details={"input": input_name, "graph": graph_title},
        )


class HandlerError(EngineError):
    """Raised when a node handler is missing or its result rejects."""

    def __init__(
        self,
        message: str,
        *,
        node_id: str | None = None,
        node_type: str | None = None,
    ):
        self.node_id = node_id
        self.node_type = node_type
        super().__init__(message, details={"node": node_id, "type": node_type})


class StepLimitExceeded(EngineError):
    """Raised when a run visits more nodes than the configured limit."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"run exceeded {limit} steps", details={"limit": limit})


class TransportError(EngineError):
    """Raised when a proxy exchange cannot be completed."""
