from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class StatusWindow:
    seconds: float


def _iter_events(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        return []
    events: list[dict[str, Any]] = []
    with open(path, encoding="utf-8") as f:
        for ln in f:
            ln = ln.strip()
            if not ln:
                continue
            try:
                events.append(json.loads(ln))
            except json.JSONDecodeError:
                continue
    return events


def compute_status(telemetry_path: Path, *, window: StatusWindow | None = None) -> dict[str, Any]:
    """Compute basic ops metrics from telemetry.jsonl (best-effort)."""
    window = window or StatusWindow(seconds=3600.0)
    cutoff = time.time() - float(window.seconds)

    events = _iter_events(telemetry_path)
    recent = [e for e in events if float(e.get("timestamp", 0.0) or 0.0) >= cutoff]

    def _count(event_type: str) -> int:
        return sum(1 for e in recent if e.get("type") == event_type)

    def _rate(ok_count: int, fail_count: int) -> float | None:
        denom = ok_count + fail_count
        return (ok_count / denom) if denom else None

    commands = [e for e in recent if e.get("type") == "command_executed"]
    denied = sum(1 for e in commands if (e.get("data") or {}).get("rejected"))
    timed_out = sum(1 for e in commands if (e.get("data") or {}).get("timed_out"))

    last_apply = next(
        (e for e in reversed(events) if e.get("type") in {"apply_succeeded", "apply_failed"}),
        None,
    )

    return {
        "window_seconds": window.seconds,
        "telemetry_path": str(telemetry_path),
        "patches_proposed": _count("patch_proposed"),
        "patches_rejected": _count("patch_rejected"),
        "patches_cancelled": _count("patch_cancelled"),
        "apply_success_rate": _rate(_count("apply_succeeded"), _count("apply_failed")),
        "verify_success_rate": _rate(_count("verify_succeeded"), _count("verify_failed")),
        "commands_executed": len(commands),
        "commands_denied": denied,
        "commands_timed_out": timed_out,
        "operator_denied": _count("operator_denied"),
        "last_apply": last_apply,
    }
