"""Operator-facing text rendering."""

from __future__ import annotations

from .schema import Advisory
from .types import ExecutionResult, PendingPatch, VerificationReport

HELP_TEXT = "\n".join(
    [
        "Commands:",
        "/git status",
        "/git diff",
        "/git diff full",
        "/git commit <message>",
        "/patch <instruction>",
        "/patch apply",
        "/patch test",
        "/patch cancel",
        "/run <cmd> ...",
    ]
)

GREETING_TEXT = "\n".join(
    [
        "Hi! Tell me what you want to do:",
        "1) /git status",
        "2) /patch <instruction>",
        "3) Ask a question (e.g. 'summarize this log' or 'what next')",
    ]
)


def clamp(s: str | None, n: int) -> str:
    t = str(s or "")
    return t[:n] + "\n...(truncated)..." if len(t) > n else t


def truncate_reply(text: str, limit: int) -> str:
    return text[:limit] or "-"


def format_pending(pending: PendingPatch, diff_chars: int = 3200) -> str:
    spec = pending.spec
    return (
        f"Patch ID: {pending.patch_id}\n"
        f"File: {spec.path}\n"
        f"Notes: {spec.notes or '-'}\n"
        f"Commit: {spec.commit_message}\n\n"
        + clamp(pending.diff_text, diff_chars)
        + "\n\nApply: /patch apply\nTest: /patch test\nCancel: /patch cancel"
    )


def format_verification(report: VerificationReport, stream_chars: int = 800) -> list[str]:
    lines = []
    for check in report.checks:
        r = check.result
        lines.append(f"- {check.name}: ok={r.ok} code={r.exit_code} attempts={check.attempts}")
        if out := r.stdout.strip():
            lines.append(f"  out: {clamp(out, stream_chars)}")
        if err := r.stderr.strip():
            lines.append(f"  err: {clamp(err, stream_chars)}")
    if not report.checks:
        lines.append("- no probes configured")
    return lines


def format_execution(result: ExecutionResult) -> str:
    return (
        f"CMD: {result.command_line}\n"
        f"OK: {result.ok} | CODE: {result.exit_code} | TIMEOUT: {result.timed_out}\n\n"
        f"STDOUT:\n{result.stdout.strip() or '-'}\n\n"
        f"STDERR:\n{result.stderr.strip() or '-'}"
    )


def format_advisory(advisory: Advisory) -> str:
    actions = [f"* {a}" for a in advisory.actions] or ["-"]
    return "\n".join(
        [advisory.summary, "", "Actions:", *actions, "", f"Next: {advisory.next_step}"]
    )
