"""Input boundary resolution.

When the values supplied for an `input` node do not cover every property of
its `schema`, the missing names are requested one by one from the run's
input resolver. Values obtained this way are cached for the rest of the run.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from .exceptions import MissingInputError
from .schemas import InputValues, OutputValues

logger = logging.getLogger(__name__)

InputResolver = Callable[[str, dict[str, Any]], Awaitable[Any] | Any]
SchemaHandler = Callable[[str, dict[str, Any], bool], Awaitable[Any]]

_OMIT = object()


class InputSchemaReader:
    """Fills values for schema properties absent from `current_outputs`."""

    def __init__(self, current_outputs: Mapping[str, Any], inputs: Mapping[str, Any]):
        self._current_outputs = dict(current_outputs)
        self._inputs = inputs

    async def read(self, handler: SchemaHandler) -> OutputValues:
        schema = self._inputs.get("schema")
        if not isinstance(schema, Mapping):
            return self._current_outputs
        properties = schema.get("properties")
        if not isinstance(properties, Mapping):
            return self._current_outputs

        required = set(schema.get("required") or ())
        outputs = dict(self._current_outputs)
        for name, property_schema in properties.items():
            if name in outputs:
                continue
            value = await handler(name, dict(property_schema or {}), name in required)
            if value is not _OMIT:
                outputs[name] = value
        return outputs


class RequestedInputs:
    """Per-run cache in front of an input resolver."""

    def __init__(self, resolver: InputResolver | None = None):
        self._resolver = resolver
        self._cache: dict[str, Any] = {}

    @property
    def can_request(self) -> bool:
        return self._resolver is not None

    def cached(self, name: str) -> bool:
        return name in self._cache

    async def request(self, name: str, schema: Mapping[str, Any]) -> Any:
        """Return a value for `name`, or None if the resolver declines."""
        if name in self._cache:
            return self._cache[name]
        if self._resolver is None:
            return None
        value = self._resolver(name, dict(schema))
        if inspect.isawaitable(value):
            value = await value
        if value is not None:
            self._cache[name] = value
        return value


async def bubble_up_inputs(
    inputs: InputValues,
    provided: Mapping[str, Any],
    requested: RequestedInputs,
    *,
    graph_title: str | None = None,
    run_id: str | None = None,
) -> OutputValues:
    """Complete `provided` against the `schema` carried by an input visit."""

    async def _handler(name: str, schema: dict[str, Any], required: bool) -> Any:
        value = await requested.request(name, schema)
        if value is not None:
            return value
        if "default" in schema:
            return schema["default"]
        if required:
            raise MissingInputError(name, graph_title=graph_title)
        logger.debug("optional input omitted name=%s", name, extra={"run_id": run_id or "system"})
        return _OMIT

    return await InputSchemaReader(provided, inputs).read(_handler)


__all__ = [
    "InputResolver",
    "InputSchemaReader",
    "RequestedInputs",
    "bubble_up_inputs",
]
