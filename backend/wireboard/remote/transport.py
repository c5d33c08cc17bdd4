"""Exchange plumbing shared by the in-memory and HTTP transports.

A server handler receives one `ServerExchange` per exchange and talks to the
peer through `receive()` and `send()`. Client code opens exchanges from a
`ClientTransport` and iterates the responses of each request until a
terminal message arrives.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from pydantic import BaseModel

from ..exceptions import EngineError, TransportError
from .protocol import ErrorResponse, ProtocolMessage, make_message, new_exchange_id

logger = logging.getLogger(__name__)


class ServerExchange:
    """Server half of one exchange, backed by asyncio queues."""

    def __init__(self, exchange_id: str | None = None, *, idle_timeout: float | None = None) -> None:
        self.id = exchange_id or new_exchange_id()
        self._idle_timeout = idle_timeout
        self._requests: asyncio.Queue[ProtocolMessage] = asyncio.Queue()
        self._responses: asyncio.Queue[ProtocolMessage | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def receive(self) -> ProtocolMessage:
        """Wait for the next request; give up after `idle_timeout` seconds if set."""
        if self._idle_timeout is None:
            return await self._requests.get()
        try:
            return await asyncio.wait_for(self._requests.get(), self._idle_timeout)
        except asyncio.TimeoutError:
            raise TransportError(
                f"exchange idle for more than {self._idle_timeout:g}s",
                details={"id": self.id},
            ) from None

    async def send(self, message_type: str, payload: BaseModel | dict[str, Any] | None = None) -> ProtocolMessage:
        if self._closed:
            raise TransportError("exchange already closed", details={"id": self.id})
        message = make_message(message_type, payload, exchange_id=self.id)
        await self._responses.put(message)
        return message

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._responses.put_nowait(None)

    def submit(self, message: ProtocolMessage) -> None:
        """Queue a request coming from the peer."""
        if self._closed:
            raise TransportError("exchange already closed", details={"id": self.id})
        if not message.is_request:
            raise TransportError(
                f"{message.type!r} is not a request type",
                details={"id": self.id, "type": message.type},
            )
        self._requests.put_nowait(message)

    async def responses(self) -> AsyncIterator[ProtocolMessage]:
        """Yield responses up to and including the next terminal one."""
        while True:
            message = await self._responses.get()
            if message is None:
                raise TransportError(
                    "exchange closed before a terminal response",
                    details={"id": self.id},
                )
            yield message
            if message.is_terminal:
                return


ServerHandler = Callable[[ServerExchange], Awaitable[None]]


async def serve_exchange(handler: ServerHandler, exchange: ServerExchange) -> None:
    """Run `handler` for one exchange; failures become an `error` response."""
    try:
        await handler(exchange)
    except EngineError as exc:
        logger.warning("exchange failed id=%s error=%s", exchange.id, exc)
        if not exchange.closed:
            await exchange.send("error", ErrorResponse(error=str(exc)))
    except Exception as exc:
        logger.exception("exchange handler crashed id=%s", exchange.id)
        if not exchange.closed:
            await exchange.send("error", ErrorResponse(error=str(exc) or type(exc).__name__))
    finally:
        exchange.close()


class ClientExchange(ABC):
    """Client half of one exchange."""

    def __init__(self, exchange_id: str | None = None) -> None:
        self.id = exchange_id or new_exchange_id()

    @abstractmethod
    def request(
        self, message_type: str, payload: BaseModel | dict[str, Any] | None = None
    ) -> AsyncIterator[ProtocolMessage]:
        """Send one request and yield its responses until a terminal one."""

    async def aclose(self) -> None:
        return None

    def _message(self, message_type: str, payload: BaseModel | dict[str, Any] | None) -> ProtocolMessage:
        return make_message(message_type, payload, exchange_id=self.id)


class ClientTransport(ABC):
    @abstractmethod
    async def open(self) -> ClientExchange:
        """Start a new exchange with the peer."""


class InMemoryClientExchange(ClientExchange):
    def __init__(self, server: ServerExchange, task: asyncio.Task[None]) -> None:
        super().__init__(server.id)
        self._server = server
        self._task = task

    async def request(
        self, message_type: str, payload: BaseModel | dict[str, Any] | None = None
    ) -> AsyncIterator[ProtocolMessage]:
        self._server.submit(self._message(message_type, payload))
        async for response in self._server.responses():
            yield response

    async def aclose(self) -> None:
        if not self._task.done():
            self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class InMemoryTransport(ClientTransport):
    """Connects clients to a server handler running in the same event loop."""

    def __init__(self, handler: ServerHandler) -> None:
        self._handler = handler

    async def open(self) -> ClientExchange:
        exchange = ServerExchange()
        task = asyncio.create_task(
            serve_exchange(self._handler, exchange),
            name=f"wireboard-exchange-{exchange.id}",
        )
        return InMemoryClientExchange(exchange, task)


__all__ = [
    "ClientExchange",
    "ClientTransport",
    "InMemoryClientExchange",
    "InMemoryTransport",
    "ServerExchange",
    "ServerHandler",
    "serve_exchange",
]
