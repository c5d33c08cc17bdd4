"""Graph loading from files, URLs and named sub-graphs."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx
import yaml
from pydantic import ValidationError

from .exceptions import ConfigurationError
from .schemas import GraphDescriptor
from .settings import get_settings

logger = logging.getLogger(__name__)

SUBGRAPH_PREFIX = "#"
_YAML_SUFFIXES = {".yaml", ".yml"}


def _is_http(url: str | None) -> bool:
    return bool(url) and urlparse(url).scheme in {"http", "https"}


def _strip_file_scheme(url: str) -> str:
    return url[len("file://"):] if url.startswith("file://") else url


def _parse(text: str, source: str) -> dict[str, Any]:
    suffix = Path(urlparse(source).path).suffix.lower()
    try:
        payload = yaml.safe_load(text) if suffix in _YAML_SUFFIXES else json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"unable to parse graph {source!r}", details={"url": source}) from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(
            f"graph {source!r} must be a mapping, got {type(payload).__name__}",
            details={"url": source},
        )
    return payload


class GraphLoader:
    """Resolves graph references relative to the graph currently running.

    `#name` refers to `graphs[name]` of the outer graph. Other references are
    local JSON/YAML files (relative to the base url's directory) or http(s)
    urls.
    """

    def __init__(
        self,
        base_url: str | None = None,
        outer_graph: GraphDescriptor | None = None,
        *,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.outer_graph = outer_graph
        self._timeout = timeout_seconds or get_settings().remote.http_timeout_seconds
        self._transport = transport

    def resolve_url(self, ref: str) -> str:
        if ref.startswith(SUBGRAPH_PREFIX) or _is_http(ref):
            return ref
        if _is_http(self.base_url):
            return urljoin(self.base_url, ref)
        path = Path(_strip_file_scheme(ref))
        if path.is_absolute() or not self.base_url:
            return str(path)
        return str(Path(_strip_file_scheme(self.base_url)).parent / path)

    async def load(self, ref: str) -> GraphDescriptor:
        if not ref:
            raise ConfigurationError("no graph reference provided")
        if ref.startswith(SUBGRAPH_PREFIX):
            return self._load_subgraph(ref[len(SUBGRAPH_PREFIX):])

        url = self.resolve_url(ref)
        if _is_http(url):
            text = await self._fetch(url)
        else:
            try:
                text = Path(url).read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigurationError(f"unable to read graph {url!r}", details={"url": url}) from exc

        try:
            graph = GraphDescriptor.model_validate(_parse(text, url))
        except ValidationError as exc:
            raise ConfigurationError(f"invalid graph {url!r}: {exc}", details={"url": url}) from exc
        if graph.url is None:
            graph.url = url
        logger.debug("graph loaded url=%s nodes=%s", url, len(graph.nodes))
        return graph

    def _load_subgraph(self, name: str) -> GraphDescriptor:
        graphs = (self.outer_graph.graphs if self.outer_graph else None) or {}
        graph = graphs.get(name)
        if graph is None:
            raise ConfigurationError(f"no sub-graph named {name!r}", details={"graph": name})
        copy = graph.deep_copy()
        if copy.url is None and self.outer_graph is not None:
            copy.url = self.outer_graph.url
        return copy

    async def _fetch(self, url: str) -> str:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.get(url)
            except httpx.HTTPError as exc:
                raise ConfigurationError(f"unable to fetch graph {url!r}", details={"url": url}) from exc
        if response.status_code >= 400:
            raise ConfigurationError(
                f"unable to fetch graph {url!r}",
                details={"url": url, "status": response.status_code, "body": response.text[:200]},
            )
        return response.text


__all__ = ["GraphLoader", "SUBGRAPH_PREFIX"]
