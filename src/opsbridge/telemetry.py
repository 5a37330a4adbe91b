"""Telemetry logging for OpsBridge.

Events are appended to a JSONL file, one object per line.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .redaction import redact_text

DEFAULT_TELEMETRY_PATH = ".opsbridge/telemetry.jsonl"


@dataclass(frozen=True)
class TelemetrySink:
    """Thin wrapper around JSONL telemetry.

    Event schema:
      {"timestamp": <float>, "run_id": <str>, "type": <str>, "data": <object>}
    """

    enabled: bool
    path: Path

    def log(self, run_id: str, event_type: str, data: dict[str, Any]) -> None:
        if not self.enabled:
            return

        entry = {
            "timestamp": time.time(),
            "run_id": run_id,
            "type": event_type,
            "data": data,
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except OSError:
            # Telemetry must never take down an operator command.
            return

    def log_execution(self, run_id: str, result: Any) -> None:
        """Record a command execution with redacted output heads."""
        self.log(
            run_id,
            "command_executed",
            {
                "cmd": result.command_line,
                "cwd": result.working_directory,
                "ok": result.ok,
                "exit_code": result.exit_code,
                "timed_out": result.timed_out,
                "rejected": result.rejected,
                "duration_s": result.duration_s,
                "stdout_head": redact_text(result.stdout),
                "stderr_head": redact_text(result.stderr),
            },
        )


NULL_SINK = TelemetrySink(enabled=False, path=Path(DEFAULT_TELEMETRY_PATH))


def prune_telemetry_file(telemetry_path: Path, retention_days: int) -> None:
    """Delete telemetry file if it is older than retention_days (mtime-based)."""
    if retention_days <= 0:
        return
    try:
        if not telemetry_path.exists():
            return
        cutoff = time.time() - (retention_days * 86400)
        if telemetry_path.stat().st_mtime < cutoff:
            telemetry_path.unlink(missing_ok=True)
    except OSError:
        return
