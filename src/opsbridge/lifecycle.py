"""Pending-patch state machine.

    EMPTY --propose--> PREPARED --apply--> APPLIED --> EMPTY
      ^                   |  ^                  (always, even on failure)
      +------cancel-------+  +--propose (replaces the pending patch)

Every public operation takes the operator's PatchSession, returns a
LifecycleOutcome and never raises: failures become operator messages.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from pathlib import Path

from .assistant import Assistant
from .config import PatchConfig
from .diff_preview import DiffPreviewer
from .errors import (
    FileNotAllowlisted,
    ForbiddenPath,
    GenerationCancelled,
    InvalidPatchSpec,
    NoPendingPatch,
    OpsBridgeError,
)
from .git_ops import GitOps
from .patch_ops import apply_operations, check_shrink
from .report import clamp, format_pending, format_verification
from .safe_paths import PathGuard
from .supervisor import ProcessSupervisor
from .telemetry import NULL_SINK, TelemetrySink
from .types import LifecycleOutcome, PatchSession, PatchSpec, PatchState, PendingPatch
from .verification import VerificationRunner

# Failures a lifecycle step may surface. Everything else is a bug and is left
# to the router's last-resort handler.
_STEP_ERRORS = (OpsBridgeError, OSError, ValueError)


def default_patch_id() -> str:
    return uuid.uuid4().hex[:8]


class PatchLifecycle:
    def __init__(
        self,
        *,
        path_guard: PathGuard,
        assistant: Assistant,
        previewer: DiffPreviewer,
        git_ops: GitOps,
        supervisor: ProcessSupervisor,
        verifier: VerificationRunner,
        patch_config: PatchConfig | None = None,
        telemetry: TelemetrySink | None = None,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = default_patch_id,
    ):
        self.path_guard = path_guard
        self.assistant = assistant
        self.previewer = previewer
        self.git_ops = git_ops
        self.supervisor = supervisor
        self.verifier = verifier
        self.patch_config = patch_config or PatchConfig()
        self.telemetry = telemetry or NULL_SINK
        self.clock = clock
        self.id_factory = id_factory

    # ------------------------------------------------------------------ propose

    def _context_files(self) -> dict[str, str]:
        files: dict[str, str] = {}
        for rel in self.patch_config.allowed_files:
            if not self.path_guard.is_file(rel):
                continue
            try:
                files[rel] = self.path_guard.read_text(rel, self.patch_config.max_file_bytes)
            except (ForbiddenPath, UnicodeDecodeError):
                # Context only; the target itself is size-checked in `_prepare`.
                continue
        return files

    def _check_target(self, spec: PatchSpec) -> Path:
        if spec.path not in self.patch_config.allowed_files:
            raise FileNotAllowlisted(
                f"{spec.path or '<empty>'} is not patchable. Allowed: {', '.join(self.patch_config.allowed_files)}"
            )
        target = self.path_guard.resolve(spec.path)
        if not target.is_file():
            raise InvalidPatchSpec(f"File not found: {spec.path}")
        return target

    async def _prepare(self, instruction: str, cancel_event: asyncio.Event | None) -> PendingPatch:
        spec = await self.assistant.propose_patch(
            instruction,
            self.patch_config.allowed_files,
            self._context_files(),
            cancel_event=cancel_event,
        )
        self._check_target(spec)
        if not spec.operations:
            raise InvalidPatchSpec("No ops provided.")

        original = self.path_guard.read_text(spec.path, self.patch_config.max_file_bytes)
        candidate = apply_operations(original, spec.operations)
        check_shrink(original, candidate, self.patch_config.min_line_ratio)

        patch_id = self.id_factory()
        preview = await self.previewer.preview(original, candidate, patch_id=patch_id, name=spec.path)
        return PendingPatch(
            patch_id=patch_id,
            spec=spec,
            original_path=preview.original_path,
            candidate_path=preview.candidate_path,
            diff_text=preview.diff_text,
            created_at=self.clock(),
        )

    async def propose(
        self,
        session: PatchSession,
        instruction: str,
        cancel_event: asyncio.Event | None = None,
    ) -> LifecycleOutcome:
        """Build, validate and preview a patch; replace any pending one."""
        instruction = (instruction or "").strip()
        if not instruction:
            return LifecycleOutcome(ok=False, message="Usage: /patch <instruction>")

        try:
            pending = await self._prepare(instruction, cancel_event)
        except GenerationCancelled:
            return LifecycleOutcome(ok=False, message="Patch request cancelled; nothing changed.")
        except _STEP_ERRORS as e:
            self._discard(session)
            self.telemetry.log(
                str(session.operator_id),
                "patch_rejected",
                {"error": type(e).__name__, "message": str(e)[:400]},
            )
            return LifecycleOutcome(
                ok=False,
                message=f"/patch error: {e}",
                details={"error": type(e).__name__},
            )

        self._discard(session)
        session.pending = pending
        self.telemetry.log(
            pending.patch_id,
            "patch_proposed",
            {"path": pending.spec.path, "ops": len(pending.spec.operations)},
        )
        return LifecycleOutcome(
            ok=True,
            message=format_pending(pending, self.patch_config.diff_preview_chars),
            pending=pending,
        )

    # ------------------------------------------------------------------ cancel

    def _discard(self, session: PatchSession) -> None:
        pending = session.pending
        if pending is not None:
            for snapshot in (pending.original_path, pending.candidate_path):
                try:
                    snapshot.unlink(missing_ok=True)
                except OSError:
                    pass
        session.clear()

    async def cancel(self, session: PatchSession) -> LifecycleOutcome:
        pending = session.pending
        if pending is None:
            return LifecycleOutcome(ok=True, message="No pending patch; nothing to cancel.")
        self._discard(session)
        self.telemetry.log(pending.patch_id, "patch_cancelled", {"path": pending.spec.path})
        return LifecycleOutcome(ok=True, message=f"Patch {pending.patch_id} cancelled.")

    # ------------------------------------------------------------------ test

    async def test(self, session: PatchSession) -> LifecycleOutcome:
        """Run the verification battery. Does not touch the pending patch."""
        report = await self.verifier.run()
        self.telemetry.log(
            str(session.operator_id),
            "verify_succeeded" if report.ok else "verify_failed",
            {"checks": {c.name: c.ok for c in report.checks}, "trigger": "test"},
        )
        lines = ["Patch tests:", *format_verification(report)]
        return LifecycleOutcome(ok=report.ok, message="\n".join(lines), verification=report)

    # ------------------------------------------------------------------ apply

    async def apply(self, session: PatchSession) -> LifecycleOutcome:
        """Write, commit, restart and verify. Pending state is always cleared.

        There is no rollback: a failure after the write leaves the file written
        and is reported to the operator.
        """
        try:
            pending = session.pending
            if pending is None:
                raise NoPendingPatch("No pending patch. Use: /patch <instruction>")
            pending.state = PatchState.APPLIED
            return await self._apply(pending)
        except _STEP_ERRORS as e:
            self.telemetry.log(
                str(session.operator_id),
                "apply_failed",
                {"error": type(e).__name__, "message": str(e)[:400]},
            )
            return LifecycleOutcome(
                ok=False,
                message=f"/patch apply error: {e}",
                details={"error": type(e).__name__},
            )
        finally:
            self._discard(session)

    async def _apply(self, pending: PendingPatch) -> LifecycleOutcome:
        target = self.path_guard.resolve(pending.spec.path)
        target.write_bytes(pending.candidate_path.read_bytes())

        commit = await self.git_ops.commit(pending.spec.commit_message)
        restart = await self.supervisor.restart()
        report = await self.verifier.run()

        self.telemetry.log(
            pending.patch_id,
            "apply_succeeded" if restart.ok else "apply_failed",
            {"path": pending.spec.path, "restart_ok": restart.ok},
        )
        self.telemetry.log(
            pending.patch_id,
            "verify_succeeded" if report.ok else "verify_failed",
            {"checks": {c.name: c.ok for c in report.checks}, "trigger": "apply"},
        )

        lines = [
            f"Patch applied & committed: {pending.patch_id}",
            f"Commit msg: {pending.spec.commit_message}",
            "",
            f"Restart {self.supervisor.service_name}: ok={restart.ok} code={restart.exit_code}",
        ]
        if restart.stderr.strip():
            lines.append("ERR:\n" + clamp(restart.stderr.strip(), 600))
        lines += ["", "Tests:", *format_verification(report, stream_chars=600)]
        lines += ["", "Git commit output:", clamp(commit.commit.stdout.strip() or "-", 800)]

        return LifecycleOutcome(
            ok=restart.ok and report.ok,
            message="\n".join(lines),
            verification=report,
            details={"commit": commit, "restart": restart},
        )
