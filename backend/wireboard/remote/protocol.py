"""Wire messages exchanged between proxy and run peers.

Every message is an envelope `{"id", "type", "data"}`; all messages of one
exchange share the same `id`. A response stream ends with the first message
whose type is terminal; continuing the exchange needs a new request.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import TransportError
from ..schemas import NodeDescriptor

RequestType = Literal["load", "run", "input", "proxy"]
ResponseType = Literal["load", "output", "beforehandler", "input", "proxy", "error", "end"]

REQUEST_TYPES: frozenset[str] = frozenset({"load", "run", "input", "proxy"})
RESPONSE_TYPES: frozenset[str] = frozenset(
    {"load", "output", "beforehandler", "input", "proxy", "error", "end"}
)
TERMINAL_RESPONSE_TYPES: frozenset[str] = frozenset({"load", "input", "proxy", "error", "end"})

PayloadT = TypeVar("PayloadT", bound=BaseModel)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class LoadRequest(_Payload):
    url: str
    proxy_nodes: list[str] = Field(default_factory=list, alias="proxyNodes")


class LoadResponse(_Payload):
    title: str | None = None
    description: str | None = None
    version: str | None = None
    diagram: str | None = None
    url: str | None = None


class RunRequest(_Payload):
    pass


class OutputResponse(_Payload):
    node: NodeDescriptor
    outputs: dict[str, Any] = Field(default_factory=dict)


class BeforehandlerResponse(_Payload):
    node: NodeDescriptor


class InputPromiseResponse(_Payload):
    node: NodeDescriptor
    input_arguments: dict[str, Any] = Field(default_factory=dict, alias="inputArguments")


class InputResolveRequest(_Payload):
    inputs: dict[str, Any] = Field(default_factory=dict)


class ProxyPromiseResponse(_Payload):
    node: NodeDescriptor
    inputs: dict[str, Any] = Field(default_factory=dict)


class ProxyResolveRequest(_Payload):
    outputs: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(_Payload):
    error: str


class EndResponse(_Payload):
    pass


# The proxy exchange reuses the run-side shapes.
ProxyRequest = ProxyPromiseResponse
ProxyResponse = ProxyResolveRequest


def new_exchange_id() -> str:
    return uuid.uuid4().hex


class ProtocolMessage(BaseModel):
    """Envelope for every request and response."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=new_exchange_id)
    type: str
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_request(self) -> bool:
        return self.type in REQUEST_TYPES

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_RESPONSE_TYPES

    def payload(self, model: type[PayloadT]) -> PayloadT:
        try:
            return model.model_validate(self.data)
        except ValidationError as exc:
            raise TransportError(
                f"malformed {self.type!r} message: {exc}",
                details={"id": self.id, "type": self.type},
            ) from exc

    def to_line(self) -> str:
        return json.dumps(self.model_dump(mode="json"))

    @classmethod
    def from_line(cls, line: str | bytes) -> "ProtocolMessage":
        try:
            return cls.model_validate_json(line)
        except ValidationError as exc:
            raise TransportError(f"malformed protocol message: {exc}") from exc


def make_message(
    message_type: str,
    payload: BaseModel | dict[str, Any] | None = None,
    *,
    exchange_id: str | None = None,
) -> ProtocolMessage:
    if message_type not in REQUEST_TYPES and message_type not in RESPONSE_TYPES:
        raise TransportError(f"unknown message type {message_type!r}")
    if isinstance(payload, BaseModel):
        data = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    else:
        data = dict(payload or {})
    if exchange_id is None:
        return ProtocolMessage(type=message_type, data=data)
    return ProtocolMessage(id=exchange_id, type=message_type, data=data)


def expect(message: ProtocolMessage, *types: str) -> ProtocolMessage:
    """Raise TransportError unless `message` has one of `types`."""
    if message.type not in types:
        raise TransportError(
            f"unexpected {message.type!r} message, expected {' or '.join(types)}",
            details={"id": message.id, "type": message.type},
        )
    return message


__all__ = [
    "BeforehandlerResponse",
    "EndResponse",
    "ErrorResponse",
    "InputPromiseResponse",
    "InputResolveRequest",
    "LoadRequest",
    "LoadResponse",
    "OutputResponse",
    "ProtocolMessage",
    "ProxyPromiseResponse",
    "ProxyRequest",
    "ProxyResolveRequest",
    "ProxyResponse",
    "REQUEST_TYPES",
    "RESPONSE_TYPES",
    "RequestType",
    "ResponseType",
    "RunRequest",
    "TERMINAL_RESPONSE_TYPES",
    "expect",
    "make_message",
    "new_exchange_id",
]
