"""Remote runs: a server drives a graph while the client answers inputs and proxied nodes.

Exchange sequence::

    client: load{url, proxyNodes}   server: load{title, description, version, url}
    client: run{}                   server: beforehandler* output* then one of
                                            input{node, inputArguments}
                                            proxy{node, inputs}
                                            end{} | error{error}
    client: input{inputs}           (answers an input; the stream resumes)
    client: proxy{outputs}          (answers a proxy; the stream resumes)
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from typing import Any

from ..kits import HandlerRegistry, KitChain, call_handler
from ..loader import GraphLoader
from ..probe import Probe, ProbeEvent
from ..runner import RunLoop, StepKind
from ..schemas import GraphDescriptor, InputValues, NodeDescriptor, OutputValues
from .protocol import (
    BeforehandlerResponse,
    EndResponse,
    ErrorResponse,
    InputPromiseResponse,
    InputResolveRequest,
    LoadRequest,
    LoadResponse,
    OutputResponse,
    ProtocolMessage,
    ProxyPromiseResponse,
    ProxyResolveRequest,
    RunRequest,
    expect,
)
from .transport import ClientTransport, ServerExchange

logger = logging.getLogger(__name__)

InputProvider = Callable[[NodeDescriptor, InputValues], Awaitable[Mapping[str, Any]] | Mapping[str, Any]]


class RunServer:
    """Loads a graph on request and runs it on behalf of a remote client."""

    def __init__(
        self,
        *,
        kits: Sequence[HandlerRegistry] = (),
        graphs: Mapping[str, GraphDescriptor] | None = None,
        loader: GraphLoader | None = None,
        kit_imports: Mapping[str, HandlerRegistry] | None = None,
        max_steps: int | None = None,
    ):
        self.kits = list(kits)
        self.graphs = dict(graphs or {})
        self.loader = loader or GraphLoader()
        self.kit_imports = dict(kit_imports or {})
        self.max_steps = max_steps

    async def serve(self, exchange: ServerExchange) -> None:
        load = expect(await exchange.receive(), "load").payload(LoadRequest)
        graph = await self._load(load.url)
        await exchange.send(
            "load",
            LoadResponse(
                title=graph.title,
                description=graph.description,
                version=graph.version,
                url=graph.url or load.url,
            ),
        )

        expect(await exchange.receive(), "run").payload(RunRequest)
        probe = Probe()

        async def _forward_beforehandler(event: ProbeEvent) -> None:
            await exchange.send("beforehandler", BeforehandlerResponse(node=event.descriptor))

        probe.subscribe("beforehandler", _forward_beforehandler)
        kits = [self._proxy_kit(exchange, load.proxy_nodes), *self.kits] if load.proxy_nodes else self.kits
        loop = RunLoop(
            graph,
            kits=kits,
            probe=probe,
            kit_imports=self.kit_imports,
            max_steps=self.max_steps,
            run_id=exchange.id,
        )
        logger.info("remote run started graph=%s", graph.label, extra={"run_id": loop.run_id})

        while True:
            result = await loop.step()
            if result.kind is StepKind.INPUT:
                assert result.node is not None
                await exchange.send(
                    "input",
                    InputPromiseResponse(node=result.node, input_arguments=result.inputs),
                )
                answer = expect(await exchange.receive(), "input").payload(InputResolveRequest)
                result.provide(answer.inputs)
            elif result.kind is StepKind.OUTPUT:
                assert result.node is not None
                await exchange.send("output", OutputResponse(node=result.node, outputs=result.outputs))
            elif result.kind is StepKind.ERROR:
                await exchange.send("error", ErrorResponse(error=str(result.error)))
                return
            elif result.kind is StepKind.END:
                await exchange.send("end", EndResponse())
                return

    async def _load(self, url: str) -> GraphDescriptor:
        graph = self.graphs.get(url)
        if graph is not None:
            return graph.deep_copy()
        return await self.loader.load(url)

    def _proxy_kit(self, exchange: ServerExchange, node_types: Sequence[str]) -> HandlerRegistry:
        registry = HandlerRegistry("remote")

        async def _proxy(inputs: dict[str, Any], context: Any) -> OutputValues:
            node = getattr(context, "node", None)
            await exchange.send("proxy", ProxyPromiseResponse(node=node, inputs=inputs))
            answer = expect(await exchange.receive(), "proxy")
            return answer.payload(ProxyResolveRequest).outputs

        for node_type in node_types:
            registry.register(node_type, _proxy)
        return registry


class RunClient:
    """Starts remote runs and answers the server's input and proxy requests."""

    def __init__(self, transport: ClientTransport, *, kits: Sequence[HandlerRegistry] = ()):
        self.transport = transport
        self.chain = KitChain(kits)

    async def run(
        self,
        url: str,
        *,
        inputs: Mapping[str, Any] | InputProvider | None = None,
        proxy_nodes: Sequence[str] = (),
    ) -> AsyncIterator[ProtocolMessage]:
        """Yield every response of the exchange, from `load` to `end` or `error`."""
        exchange = await self.transport.open()
        try:
            async for response in exchange.request("load", LoadRequest(url=url, proxy_nodes=list(proxy_nodes))):
                yield response
                if response.type == "error":
                    return

            pending: tuple[str, Any] | None = ("run", RunRequest())
            while pending is not None:
                request_type, payload = pending
                pending = None
                async for response in exchange.request(request_type, payload):
                    yield response
                    if response.type == "input":
                        prompt = response.payload(InputPromiseResponse)
                        values = await self._answer_input(inputs, prompt.node, prompt.input_arguments)
                        pending = ("input", InputResolveRequest(inputs=values))
                    elif response.type == "proxy":
                        request = response.payload(ProxyPromiseResponse)
                        outputs = await self._run_local(request.node, request.inputs)
                        pending = ("proxy", ProxyResolveRequest(outputs=outputs))
        finally:
            await exchange.aclose()

    async def _answer_input(
        self,
        inputs: Mapping[str, Any] | InputProvider | None,
        node: NodeDescriptor,
        arguments: InputValues,
    ) -> dict[str, Any]:
        if inputs is None:
            return {}
        if callable(inputs):
            answer = inputs(node, arguments)
            if inspect.isawaitable(answer):
                answer = await answer
            return dict(answer or {})
        return dict(inputs)

    async def _run_local(self, node: NodeDescriptor, inputs: InputValues) -> OutputValues:
        handler = self.chain.require(node.type, node_id=node.id)
        return await call_handler(handler, inputs, None)


__all__ = ["InputProvider", "RunClient", "RunServer"]
