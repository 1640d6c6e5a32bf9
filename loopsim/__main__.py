from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from loopsim.config import LoopConfig
from loopsim.engine import Engine, Script
from loopsim.events import RunResult
from loopsim.reporting import format_trace, save_trace, trace_payload
from loopsim.scenarios import SCENARIOS, Scenario, get_scenario


@dataclass
class RunContext:
    target: str
    until: float | None
    max_steps: int | None
    output_format: str
    out_path: str | None
    check: bool


def _import_symbol(path: str) -> Any:
    if ":" in path:
        module_name, attr_path = path.split(":", 1)
        module = importlib.import_module(module_name)
        return _resolve_attr(module, attr_path)
    parts = path.split(".")
    if len(parts) < 2:
        raise ValueError(
            f"'{path}' is neither a built-in scenario nor a fully-qualified symbol. Use module:symbol format."
        )
    module = importlib.import_module(".".join(parts[:-1]))
    return getattr(module, parts[-1])


def _resolve_attr(obj: Any, attr_path: str) -> Any:
    current = obj
    for attr in attr_path.split("."):
        current = getattr(current, attr)
    return current


def _resolve_target(target: str) -> tuple[Script, Scenario | None]:
    if target in SCENARIOS:
        scenario = get_scenario(target)
        return scenario.script, scenario
    obj = _import_symbol(target)
    if isinstance(obj, Scenario):
        return obj.script, obj
    if not callable(obj):
        raise TypeError(f"{target} did not resolve to a script callable.")
    return obj, None


def _build_config(context: RunContext) -> LoopConfig:
    overrides: dict[str, Any] = {}
    if context.max_steps is not None:
        overrides["loop.max_steps"] = context.max_steps
    return LoopConfig.from_overrides(overrides)


def _render(context: RunContext, result: RunResult, check_failed: bool) -> None:
    if context.output_format == "json":
        payload = {"status": "mismatch" if check_failed else "ok", "target": context.target}
        payload.update(trace_payload(result))
        print(json.dumps(payload))
        return
    print(format_trace(result))
    if result.pending_tasks:
        print(f"(stopped at t={result.time:g} with {len(result.pending_tasks)} pending task(s))")


def handle_run(args: argparse.Namespace) -> int:
    context = RunContext(
        target=args.target,
        until=args.until,
        max_steps=args.max_steps,
        output_format=args.format,
        out_path=args.out,
        check=args.check,
    )
    script, scenario = _resolve_target(context.target)
    until = context.until
    if until is None and scenario is not None:
        until = scenario.until

    result = Engine(_build_config(context)).run(script, until=until)

    check_failed = False
    if context.check:
        if scenario is None:
            raise ValueError("--check requires a scenario with expected values")
        check_failed = tuple(result.values) != scenario.expected
        if check_failed:
            print(
                f"Expected {list(scenario.expected)!r}, got {result.values!r}",
                file=sys.stderr,
            )

    if context.out_path is not None:
        save_trace(result, context.out_path)
    _render(context, result, check_failed)
    return 1 if check_failed else 0


def handle_list(args: argparse.Namespace) -> int:
    if args.format == "json":
        print(
            json.dumps(
                [
                    {"name": s.name, "description": s.description, "expected": list(s.expected)}
                    for s in SCENARIOS.values()
                ]
            )
        )
        return 0
    width = max(len(name) for name in SCENARIOS)
    for scenario in SCENARIOS.values():
        print(f"{scenario.name:<{width}}  {scenario.description}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loopsim",
        description="Deterministic simulator of a cooperative event loop",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging level for simulator diagnostics (default: WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List built-in scenarios")
    list_parser.add_argument("--format", choices=("text", "json"), default="text")
    list_parser.set_defaults(func=handle_list)

    run_parser = subparsers.add_parser(
        "run",
        help="Run a scenario and print its trace",
        description=(
            "Run a built-in scenario or a script callable and print the ordered trace.\n\n"
            "Examples:\n"
            "  loopsim run sync-first\n"
            "  loopsim run interval-cancel --check\n"
            "  loopsim run myapp.scripts:startup --until 1000 --format json"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument(
        "target",
        help="Built-in scenario name or module:attr path to a callable taking the engine",
    )
    run_parser.add_argument("--until", type=float, help="Stop at this virtual time (ms)")
    run_parser.add_argument("--max-steps", type=int, help="Callback budget for the run")
    run_parser.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Output format (default: text)",
    )
    run_parser.add_argument("--out", help="Also write the JSON trace to this path")
    run_parser.add_argument(
        "--check",
        action="store_true",
        help="Compare emitted values with the scenario's expected values (exit 1 on mismatch)",
    )
    run_parser.set_defaults(func=handle_run)

    return parser


def main(argv: Iterable[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")
    try:
        return args.func(args)
    except Exception as exc:
        if getattr(args, "format", "text") == "json":
            payload = {
                "status": "error",
                "error": exc.__class__.__name__,
                "message": str(exc),
            }
            print(json.dumps(payload))
        else:
            print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
