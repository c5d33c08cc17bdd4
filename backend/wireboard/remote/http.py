"""HTTP transport: one POST per request, responses streamed as NDJSON."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from fastapi import APIRouter, FastAPI, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ..exceptions import TransportError
from ..settings import get_settings
from .protocol import ProtocolMessage
from .transport import ClientExchange, ClientTransport, ServerExchange, ServerHandler, serve_exchange

logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"


class ExchangeHost:
    """Keeps server exchanges alive between the HTTP requests of one exchange.

    An exchange whose client stops sending requests fails with an idle
    `TransportError` after `idle_timeout_seconds` and is then forgotten.
    """

    def __init__(self, handler: ServerHandler, *, idle_timeout_seconds: float | None = None) -> None:
        self._handler = handler
        self._idle_timeout = idle_timeout_seconds or get_settings().remote.exchange_idle_seconds
        self._exchanges: dict[str, ServerExchange] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        return len(self._exchanges)

    def accept(self, message: ProtocolMessage) -> ServerExchange:
        exchange = self._exchanges.get(message.id)
        if exchange is None:
            exchange = ServerExchange(message.id, idle_timeout=self._idle_timeout)
            self._exchanges[message.id] = exchange
            task = asyncio.create_task(
                serve_exchange(self._handler, exchange),
                name=f"wireboard-http-exchange-{message.id}",
            )
            self._tasks.add(task)
            task.add_done_callback(lambda done, exchange_id=message.id: self._forget(exchange_id, done))
        exchange.submit(message)
        return exchange

    def _forget(self, exchange_id: str, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        self._exchanges.pop(exchange_id, None)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._exchanges.clear()


def get_router(host: ExchangeHost, *, path: str | None = None) -> APIRouter:
    """Build a router that feeds requests at `path` (settings default) to `host`."""

    route = path or get_settings().remote.proxy_path
    router = APIRouter()

    @router.post(route)
    async def exchange_endpoint(payload: ProtocolMessage) -> StreamingResponse:
        """Accept one request and stream its responses until a terminal one."""
        if not payload.is_request:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{payload.type!r} is not a request type",
            )
        try:
            exchange = host.accept(payload)
        except TransportError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        logger.debug("exchange request id=%s type=%s", payload.id, payload.type)

        async def response_lines():
            try:
                async for message in exchange.responses():
                    yield message.to_line() + "\n"
            except TransportError as exc:
                logger.warning("exchange closed early id=%s error=%s", payload.id, exc)

        response = StreamingResponse(response_lines(), media_type=NDJSON_MEDIA_TYPE)
        response.headers["Cache-Control"] = "no-cache"
        response.headers["X-Exchange-Id"] = payload.id
        return response

    return router


def create_app(
    handler: ServerHandler,
    *,
    path: str | None = None,
    idle_timeout_seconds: float | None = None,
) -> FastAPI:
    host = ExchangeHost(handler, idle_timeout_seconds=idle_timeout_seconds)
    app = FastAPI(title="wireboard")
    app.state.exchange_host = host
    app.include_router(get_router(host, path=path))

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await host.close()

    return app


class HTTPClientExchange(ClientExchange):
    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        super().__init__()
        self._client = client
        self._url = url

    async def request(
        self, message_type: str, payload: BaseModel | dict[str, Any] | None = None
    ) -> AsyncIterator[ProtocolMessage]:
        message = self._message(message_type, payload)
        try:
            async with self._client.stream("POST", self._url, json=message.model_dump(mode="json")) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise TransportError(
                        f"proxy endpoint returned {response.status_code}",
                        details={"status": response.status_code, "body": body[:200]},
                    )
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    reply = ProtocolMessage.from_line(line)
                    yield reply
                    if reply.is_terminal:
                        return
        except httpx.HTTPError as exc:
            raise TransportError(f"proxy request failed: {exc}", details={"url": self._url}) from exc
        raise TransportError("response stream ended before a terminal message", details={"id": self.id})


class HTTPClientTransport(ClientTransport):
    """Posts requests to a remote exchange endpoint with httpx."""

    def __init__(
        self,
        url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(
            timeout=timeout_seconds or get_settings().remote.http_timeout_seconds
        )
        self._owns_client = client is None

    async def open(self) -> ClientExchange:
        return HTTPClientExchange(self._client, self.url)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = [
    "ExchangeHost",
    "HTTPClientExchange",
    "HTTPClientTransport",
    "NDJSON_MEDIA_TYPE",
    "create_app",
    "get_router",
]
