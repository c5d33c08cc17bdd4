"""Instrumentation channel for run loops.

A `Probe` fans out cancelable notifications (`skip`, `input`, `output`,
`beforehandler`, `node`) to subscribers. A `beforehandler` subscriber can
substitute the handler result by setting `event.outputs` and calling
`prevent_default()`; preventing without outputs vetoes the handler.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from .exceptions import EngineError
from .schemas import InputValues, NodeDescriptor

logger = logging.getLogger(__name__)

ProbeEventType = Literal["skip", "input", "output", "beforehandler", "node"]
PROBE_EVENT_TYPES: tuple[str, ...] = ("skip", "input", "output", "beforehandler", "node")


@dataclass
class ProbeEvent:
    """Notification about one visit."""

    type: ProbeEventType
    descriptor: NodeDescriptor
    inputs: InputValues
    outputs: Any = None
    missing_inputs: tuple[str, ...] = ()
    run_id: str | None = None
    _default_prevented: bool = field(default=False, repr=False)

    def prevent_default(self) -> None:
        self._default_prevented = True

    @property
    def default_prevented(self) -> bool:
        return self._default_prevented


ProbeCallback = Callable[[ProbeEvent], Awaitable[None] | None]


class Probe:
    """In-process pub/sub for probe events."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[ProbeCallback]] = {}
        self._global_subscribers: list[ProbeCallback] = []

    def subscribe(self, event_type: ProbeEventType, callback: ProbeCallback) -> Callable[[], None]:
        """Register callback for one event type and return an unsubscribe handle."""
        if event_type not in PROBE_EVENT_TYPES:
            raise ValueError(f"unknown probe event type {event_type}")
        subscribers = self._subscribers.setdefault(event_type, [])
        subscribers.append(callback)

        def _unsubscribe() -> None:
            current = self._subscribers.get(event_type)
            if not current or callback not in current:
                return
            current.remove(callback)
            if not current:
                self._subscribers.pop(event_type, None)

        return _unsubscribe

    def subscribe_all(self, callback: ProbeCallback) -> Callable[[], None]:
        self._global_subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._global_subscribers:
                self._global_subscribers.remove(callback)

        return _unsubscribe

    async def dispatch(self, event: ProbeEvent) -> bool:
        """Deliver `event`; return False if a subscriber prevented the default."""
        callbacks = list(self._subscribers.get(event.type, ())) + list(self._global_subscribers)
        for callback in callbacks:
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except EngineError:
                raise
            except Exception:  # pragma: no cover - defensive logging
                logger.exception(
                    "probe subscriber failed type=%s node=%s",
                    event.type,
                    event.descriptor.id,
                    extra={"run_id": event.run_id or "system"},
                )
        return not event.default_prevented
