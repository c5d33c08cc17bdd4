"""Command-line interface for running graphs."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Sequence

from pydantic import BaseModel

from .env import load_dotenv_if_present
from .exceptions import EngineError
from .kits import HandlerRegistry, KitLoader
from .loader import GraphLoader
from .run_logging import configure_logging
from .runner import RunLoop, StepKind
from .schemas import KitDescriptor
from .settings import get_settings

logger = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="wireboard", description="Run wireboard graphs.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a graph and print its outputs as JSON lines.")
    run_parser.add_argument("graph", help="Path or URL of a JSON/YAML graph.")
    run_parser.add_argument(
        "--input",
        action="append",
        dest="inputs",
        default=[],
        metavar="NAME=VALUE",
        help="Value supplied to every input node (can be provided multiple times).",
    )
    run_parser.add_argument(
        "--kit",
        action="append",
        dest="kits",
        default=[],
        metavar="MODULE:ATTR",
        help="Python reference to a HandlerRegistry (can be provided multiple times).",
    )
    run_parser.add_argument(
        "--interactive",
        action="store_true",
        help="Prompt on stdin for inputs that were not supplied.",
    )
    run_parser.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help="Abort after this many visits (default: WIREBOARD_MAX_STEPS, 0 = unlimited).",
    )
    run_parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: WIREBOARD_LOG_LEVEL or INFO).",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def _parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def parse_inputs(pairs: Sequence[str]) -> dict[str, Any]:
    """Turn `NAME=VALUE` pairs into a mapping; values are JSON when they parse."""
    values: dict[str, Any] = {}
    for pair in pairs:
        name, separator, raw = pair.partition("=")
        if not separator or not name:
            raise ValueError(f"expected NAME=VALUE, got {pair!r}")
        values[name] = _parse_value(raw)
    return values


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    return str(value)


def _load_kits(references: Sequence[str]) -> list[HandlerRegistry]:
    descriptors = [KitDescriptor(url=f"python:{reference}") for reference in references]
    return KitLoader(descriptors).load()


async def _prompt(name: str, schema: dict[str, Any]) -> Any:
    label = schema.get("title") or name
    description = schema.get("description")
    prompt = f"{label} ({description}): " if description else f"{label}: "
    raw = await asyncio.to_thread(input, prompt)
    if not raw:
        return None
    return _parse_value(raw)


async def _run_graph(args: argparse.Namespace) -> int:
    graph = await GraphLoader().load(args.graph)
    inputs = parse_inputs(args.inputs)
    loop = RunLoop(
        graph,
        kits=_load_kits(args.kits),
        request_input=_prompt if args.interactive else None,
        max_steps=args.max_steps,
    )
    async for result in loop.run():
        if result.kind is StepKind.INPUT:
            result.provide(inputs)
        elif result.kind is StepKind.OUTPUT:
            line = {"node": result.node.id if result.node else None, "outputs": result.outputs}
            print(json.dumps(line, default=_json_default), flush=True)
    return 0


async def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    load_dotenv_if_present()
    configure_logging(args.log_level or get_settings().logging.level)
    try:
        if args.command == "run":
            return await _run_graph(args)
        return 2
    except KeyboardInterrupt:
        print("Run interrupted.", file=sys.stderr)
        return 1
    except (EngineError, ValueError) as exc:
        print(f"Run failed: {exc}", file=sys.stderr)
        return 1


def entrypoint() -> None:
    """Synchronously run the async CLI for convenience."""
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":  # pragma: no cover
    entrypoint()
