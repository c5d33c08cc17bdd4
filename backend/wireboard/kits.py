"""Handler registries ("kits") and their priority-ordered composition."""

from __future__ import annotations

import importlib
import inspect
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .exceptions import ConfigurationError, HandlerError
from .schemas import KitDescriptor, OutputValues

logger = logging.getLogger(__name__)

LOCAL_KIT_URL = "."
PYTHON_KIT_SCHEME = "python:"

NodeHandler = Callable[..., Any]


class HandlerRegistry:
    """Named mapping from node type to handler function."""

    def __init__(
        self,
        url: str = LOCAL_KIT_URL,
        handlers: Mapping[str, NodeHandler] | None = None,
    ):
        self.url = url
        self._handlers: dict[str, NodeHandler] = dict(handlers or {})

    def register(self, node_type: str, handler: NodeHandler | None = None):
        """Register a handler; usable directly or as a decorator."""
        if not node_type:
            raise ValueError("node_type must be non-empty")

        def _register(func: NodeHandler) -> NodeHandler:
            self._handlers[node_type] = func
            return func

        if handler is None:
            return _register
        return _register(handler)

    def resolve(self, node_type: str) -> NodeHandler | None:
        return self._handlers.get(node_type)

    @property
    def node_types(self) -> list[str]:
        return list(self._handlers)

    def restrict(self, using: Sequence[str] | None) -> "HandlerRegistry":
        """Return a registry limited to `using` (all types when omitted)."""
        if not using:
            return self
        return HandlerRegistry(
            self.url,
            {name: handler for name, handler in self._handlers.items() if name in using},
        )

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._handlers

    def __repr__(self) -> str:
        return f"HandlerRegistry(url={self.url!r}, types={self.node_types!r})"


class KitChain:
    """Chain of responsibility over registries; the first match wins."""

    def __init__(self, registries: Sequence[HandlerRegistry]):
        self.registries = list(registries)

    def resolve(self, node_type: str) -> NodeHandler | None:
        for registry in self.registries:
            handler = registry.resolve(node_type)
            if handler is not None:
                return handler
        return None

    def require(self, node_type: str, *, node_id: str | None = None) -> NodeHandler:
        handler = self.resolve(node_type)
        if handler is None:
            raise HandlerError(
                f'No handler for node type "{node_type}"',
                node_id=node_id,
                node_type=node_type,
            )
        return handler


def _accepts_context(handler: NodeHandler) -> bool:
    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return True
    positional = 0
    for parameter in signature.parameters.values():
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            return True
        if parameter.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            positional += 1
    return positional >= 2


async def call_handler(handler: NodeHandler, inputs: Mapping[str, Any], context: Any) -> OutputValues:
    """Invoke a sync or async handler, with or without context, and normalise its result."""
    if _accepts_context(handler):
        result = handler(dict(inputs), context)
    else:
        result = handler(dict(inputs))
    if inspect.isawaitable(result):
        result = await result
    if result is None:
        return {}
    if not isinstance(result, Mapping):
        raise TypeError(f"handler returned {type(result).__name__}, expected a mapping")
    return dict(result)


def _import_registry(reference: str) -> HandlerRegistry:
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(
            f"kit reference must look like 'python:module:attribute' (got {reference!r})",
            details={"kit": reference},
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(
            f"unable to import kit module {module_name!r}",
            details={"kit": reference},
        ) from exc
    target = getattr(module, attribute, None)
    if callable(target) and not isinstance(target, HandlerRegistry):
        target = target()
    if not isinstance(target, HandlerRegistry):
        raise ConfigurationError(
            f"kit reference {reference!r} does not resolve to a HandlerRegistry",
            details={"kit": reference},
        )
    return target


class KitLoader:
    """Resolves kit descriptors of a graph into handler registries."""

    def __init__(
        self,
        kits: Sequence[KitDescriptor] | None = None,
        imports: Mapping[str, HandlerRegistry] | None = None,
    ):
        self._kits = list(kits or [])
        self._imports = dict(imports or {})

    def load(self) -> list[HandlerRegistry]:
        registries: list[HandlerRegistry] = []
        for kit in self._kits:
            if kit.url == LOCAL_KIT_URL:
                continue
            registry = self._imports.get(kit.url)
            if registry is None:
                if not kit.url.startswith(PYTHON_KIT_SCHEME):
                    raise ConfigurationError(
                        f"unsupported kit url {kit.url!r}",
                        details={"kit": kit.url},
                    )
                registry = _import_registry(kit.url[len(PYTHON_KIT_SCHEME):])
            registries.append(registry.restrict(kit.using))
            logger.debug("kit resolved url=%s types=%s", kit.url, registry.node_types)
        return registries


__all__ = [
    "HandlerRegistry",
    "KitChain",
    "KitLoader",
    "LOCAL_KIT_URL",
    "NodeHandler",
    "call_handler",
]
