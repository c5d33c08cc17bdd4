from __future__ import annotations

import asyncio

import pytest

from helpers import doubler_graph
from wireboard import HandlerRegistry, KitChain, KitDescriptor, KitLoader, RunLoop
from wireboard.exceptions import ConfigurationError, HandlerError
from wireboard.kits import call_handler


def test_first_registry_with_a_handler_wins() -> None:
    primary = HandlerRegistry("primary", {"greet": lambda inputs: {"who": "primary"}})
    fallback = HandlerRegistry("fallback", {"greet": lambda inputs: {"who": "fallback"}, "other": dict})
    chain = KitChain([primary, fallback])

    assert chain.resolve("greet")({}) == {"who": "primary"}
    assert chain.resolve("other") is dict
    assert chain.resolve("missing") is None


def test_require_raises_for_unknown_type() -> None:
    with pytest.raises(HandlerError, match='No handler for node type "ghost"') as excinfo:
        KitChain([]).require("ghost", node_id="n1")
    assert excinfo.value.node_id == "n1"


def test_register_works_directly_and_as_decorator() -> None:
    registry = HandlerRegistry("kit")
    registry.register("direct", dict)

    @registry.register("decorated")
    def decorated(inputs):
        return inputs

    assert registry.node_types == ["direct", "decorated"]
    assert "decorated" in registry
    with pytest.raises(ValueError):
        registry.register("", dict)


def test_restrict_keeps_only_used_types(kit) -> None:
    restricted = kit.restrict(["double"])

    assert restricted.node_types == ["double"]
    assert kit.restrict(None) is kit


def test_call_handler_passes_context_only_when_accepted() -> None:
    seen = []

    def without_context(inputs):
        return {"n": len(inputs)}

    async def with_context(inputs, context):
        seen.append(context)
        return None

    assert asyncio.run(call_handler(without_context, {"a": 1}, "ctx")) == {"n": 1}
    assert asyncio.run(call_handler(with_context, {}, "ctx")) == {}
    assert seen == ["ctx"]


def test_call_handler_rejects_non_mapping_results() -> None:
    with pytest.raises(TypeError, match="expected a mapping"):
        asyncio.run(call_handler(lambda inputs: [1, 2], {}, None))


def test_loader_resolves_import_map_and_python_references(kit) -> None:
    loader = KitLoader(
        [
            KitDescriptor(url="."),
            KitDescriptor(url="mapped", using=["reverser"]),
            KitDescriptor(url="python:sample_kit:KIT"),
            KitDescriptor(url="python:sample_kit:make_kit"),
        ],
        imports={"mapped": kit},
    )

    registries = loader.load()

    assert [registry.url for registry in registries] == ["sample-kit"] * 3
    assert registries[0].node_types == ["reverser"]
    assert "double" in registries[1]


def test_loader_rejects_unknown_urls() -> None:
    with pytest.raises(ConfigurationError, match="unsupported kit url"):
        KitLoader([KitDescriptor(url="https://example.com/kit.js")]).load()
    with pytest.raises(ConfigurationError, match="unable to import kit module"):
        KitLoader([KitDescriptor(url="python:no_such_module_here:kit")]).load()
    with pytest.raises(ConfigurationError, match="does not resolve to a HandlerRegistry"):
        KitLoader([KitDescriptor(url="python:sample_kit:__doc__")]).load()


def test_graph_declared_kits_are_loaded_by_the_run() -> None:
    graph = doubler_graph(kits=[{"url": "python:sample_kit:make_kit"}])

    assert asyncio.run(RunLoop(graph).run_once({"x": 21})) == {"y": 42}
