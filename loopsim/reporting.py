"""Rendering and export of run traces."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger

from loopsim.events import RunResult, TraceEntry, TraceKind


def _json_safe(value: Any) -> Any:
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return repr(value)


def _format_time(time: float) -> str:
    return f"{time:g}"


def format_entry(entry: TraceEntry) -> str:
    if entry.kind is TraceKind.EMIT:
        return f"[t={_format_time(entry.time)}] {entry.value}"
    label = entry.kind.value.upper()
    return f"[t={_format_time(entry.time)}] {label} ({entry.source}): {_json_safe(entry.value)}"


def format_trace(result: RunResult) -> str:
    return "\n".join(format_entry(entry) for entry in result.trace)


def trace_payload(result: RunResult) -> dict[str, Any]:
    return {
        "time": result.time,
        "steps": result.steps,
        "pending_tasks": list(result.pending_tasks),
        "values": [_json_safe(value) for value in result.values],
        "trace": [
            {
                "seq": entry.seq,
                "time": entry.time,
                "kind": entry.kind.value,
                "value": _json_safe(entry.value),
                "source": entry.source,
            }
            for entry in result.trace
        ],
    }


def save_trace(result: RunResult, path: str | Path) -> Path:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(trace_payload(result), indent=2), encoding="utf-8")
    logger.info("Trace saved to {}", output_path)
    return output_path


__all__ = [
    "format_entry",
    "format_trace",
    "save_trace",
    "trace_payload",
]
