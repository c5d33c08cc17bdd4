"""Proxy protocol: run nodes or whole graphs on a remote peer."""

from .http import HTTPClientTransport, create_app, get_router
from .protocol import ProtocolMessage, TERMINAL_RESPONSE_TYPES, make_message
from .proxy import ProxyClient, ProxyServer
from .run import RunClient, RunServer
from .transport import ClientTransport, InMemoryTransport, ServerExchange

__all__ = [
    "ClientTransport",
    "HTTPClientTransport",
    "InMemoryTransport",
    "ProtocolMessage",
    "ProxyClient",
    "ProxyServer",
    "RunClient",
    "RunServer",
    "ServerExchange",
    "TERMINAL_RESPONSE_TYPES",
    "create_app",
    "get_router",
    "make_message",
]
