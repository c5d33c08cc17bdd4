"""Pydantic models describing graphs, edges and capabilities."""

from __future__ import annotations

import copy
import json
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

InputValues = dict[str, Any]
OutputValues = dict[str, Any]

ALL_OUTPUTS = "*"
ENTRY_SOURCE = "$entry"


class NodeDescriptor(BaseModel):
    """A node in a graph: unique id, handler type and static configuration."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    configuration: dict[str, Any] = Field(default_factory=dict)


class Edge(BaseModel):
    """A wire from one node's output port to another node's input port.

    `out="*"` forwards every output of the source. An edge without `out`
    carries no data; an edge without `in` never counts as a required input.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    from_: str = Field(..., alias="from")
    to: str
    out: str | None = None
    in_: str | None = Field(default=None, alias="in")
    optional: bool = False
    constant: bool = False

    @property
    def key(self) -> tuple[str, str | None, str, str | None]:
        return (self.from_, self.out, self.to, self.in_)


class KitDescriptor(BaseModel):
    """Reference to a handler registry used by a graph."""

    model_config = ConfigDict(extra="forbid")

    url: str
    using: list[str] | None = None


class GraphDescriptor(BaseModel):
    """Declarative node and edge structure plus metadata."""

    model_config = ConfigDict(extra="forbid")

    url: str | None = None
    title: str | None = None
    description: str | None = None
    version: str | None = None
    edges: list[Edge] = Field(default_factory=list)
    nodes: list[NodeDescriptor] = Field(default_factory=list)
    kits: list[KitDescriptor] = Field(default_factory=list)
    graphs: dict[str, GraphDescriptor] | None = None
    args: dict[str, Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-compatible form using wire names (`from`, `in`)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self, *, indent: int | None = None) -> str:
        return json.dumps(self.to_wire(), indent=indent)

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any] | GraphDescriptor) -> GraphDescriptor:
        if isinstance(payload, GraphDescriptor):
            return payload
        return cls.model_validate(payload)

    def deep_copy(self) -> GraphDescriptor:
        return self.model_copy(deep=True)

    @property
    def label(self) -> str | None:
        """Human-readable name used in diagnostics."""
        return self.title or self.url


class BoardCapability(BaseModel):
    """A not-yet-run graph plus its bound arguments, passed around as data."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["board"] = "board"
    board: GraphDescriptor

    @property
    def args(self) -> dict[str, Any]:
        return dict(self.board.args or {})

    def bind(self, args: Mapping[str, Any]) -> BoardCapability:
        """Return a new capability with `args` copied into the graph."""
        board = self.board.deep_copy()
        board.args = copy.deepcopy(dict(args))
        return BoardCapability(board=board)


class ErrorCapability(BaseModel):
    """Capability carrying a failure instead of a runnable graph."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["error"] = "error"
    error: str | None = None
    inputs: dict[str, Any] | None = None
    descriptor: NodeDescriptor | None = None


Capability = Annotated[Union[BoardCapability, ErrorCapability], Field(discriminator="kind")]

_CAPABILITY_ADAPTER: TypeAdapter[BoardCapability | ErrorCapability] = TypeAdapter(Capability)


def as_capability(value: Any) -> BoardCapability | ErrorCapability | None:
    """Coerce a node value into a capability, or return None if it is not one."""
    if isinstance(value, (BoardCapability, ErrorCapability)):
        return value
    if not isinstance(value, Mapping) or "kind" not in value:
        return None
    try:
        return _CAPABILITY_ADAPTER.validate_python(dict(value))
    except ValidationError:
        return None


GraphDescriptor.model_rebuild()
BoardCapability.model_rebuild()


__all__ = [
    "ALL_OUTPUTS",
    "BoardCapability",
    "Capability",
    "ENTRY_SOURCE",
    "Edge",
    "ErrorCapability",
    "GraphDescriptor",
    "InputValues",
    "KitDescriptor",
    "NodeDescriptor",
    "OutputValues",
    "as_capability",
]
