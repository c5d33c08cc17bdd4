"""Run selected node types on a remote peer."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ..exceptions import TransportError
from ..kits import HandlerRegistry, KitChain, NodeHandler, call_handler
from ..schemas import NodeDescriptor, OutputValues
from .protocol import ErrorResponse, ProxyRequest, ProxyResponse, expect
from .transport import ClientTransport, ServerExchange

logger = logging.getLogger(__name__)

PROXY_KIT_URL = "proxy"


class ProxyServer:
    """Answers `proxy` requests by running handlers from its own kits."""

    def __init__(self, kits: Sequence[HandlerRegistry]):
        self.chain = KitChain(kits)

    async def serve(self, exchange: ServerExchange) -> None:
        request = expect(await exchange.receive(), "proxy")
        payload = request.payload(ProxyRequest)
        handler = self.chain.require(payload.node.type, node_id=payload.node.id)
        logger.info("proxy request id=%s node=%s type=%s", exchange.id, payload.node.id, payload.node.type)
        outputs = await call_handler(handler, payload.inputs, None)
        await exchange.send("proxy", ProxyResponse(outputs=outputs))


class ProxyClient:
    """Delegates node execution to a `ProxyServer` over a transport."""

    def __init__(self, transport: ClientTransport):
        self.transport = transport

    async def proxy(
        self,
        node: NodeDescriptor | Mapping[str, Any],
        inputs: Mapping[str, Any],
    ) -> OutputValues:
        descriptor = node if isinstance(node, NodeDescriptor) else NodeDescriptor.model_validate(dict(node))
        exchange = await self.transport.open()
        try:
            async for response in exchange.request(
                "proxy", ProxyRequest(node=descriptor, inputs=dict(inputs))
            ):
                if response.type == "error":
                    raise TransportError(
                        response.payload(ErrorResponse).error,
                        details={"node": descriptor.id, "type": descriptor.type},
                    )
                if response.type == "proxy":
                    return response.payload(ProxyResponse).outputs
            raise TransportError("proxy exchange ended without outputs", details={"node": descriptor.id})
        finally:
            await exchange.aclose()

    def kit(self, node_types: Sequence[str], *, url: str = PROXY_KIT_URL) -> HandlerRegistry:
        """Build a registry whose handlers forward `node_types` to the peer."""
        registry = HandlerRegistry(url)
        for node_type in node_types:
            registry.register(node_type, self._forwarder(node_type))
        return registry

    def _forwarder(self, node_type: str) -> NodeHandler:
        async def _forward(inputs: dict[str, Any], context: Any) -> OutputValues:
            node = getattr(context, "node", None) or NodeDescriptor(id=node_type, type=node_type)
            return await self.proxy(node, inputs)

        return _forward


__all__ = ["PROXY_KIT_URL", "ProxyClient", "ProxyServer"]
