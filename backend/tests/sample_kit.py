"""Handlers shared by the test suite."""

from __future__ import annotations

import asyncio
from typing import Any

from wireboard import HandlerRegistry


def make_kit() -> HandlerRegistry:
    kit = HandlerRegistry("sample-kit")

    @kit.register("noop")
    def noop(inputs: dict[str, Any]) -> dict[str, Any]:
        return inputs

    @kit.register("reverser")
    def reverser(inputs: dict[str, Any]) -> dict[str, Any]:
        return {key: value[::-1] if isinstance(value, str) else value for key, value in inputs.items()}

    @kit.register("double")
    def double(inputs: dict[str, Any]) -> dict[str, Any]:
        return {"y": inputs["x"] * 2}

    @kit.register("increment")
    def increment(inputs: dict[str, Any]) -> dict[str, Any]:
        count = inputs["count"] + 1
        if count >= inputs["threshold"]:
            return {"done": count}
        return {"count": count}

    @kit.register("append")
    def append(inputs: dict[str, Any]) -> dict[str, Any]:
        inputs["items"].append("x")
        return {"items": inputs["items"]}

    @kit.register("shout")
    async def shout(inputs: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(0)
        return {"text": str(inputs["text"]).upper()}

    @kit.register("explode")
    def explode(inputs: dict[str, Any]) -> dict[str, Any]:
        raise ValueError("boom")

    return kit


KIT = make_kit()
