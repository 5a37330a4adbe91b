"""Core data types for OpsBridge."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .errors import ExecutionDenied, ExecutionFailed, ExecutionTimeout

if TYPE_CHECKING:
    from .schema import PatchOperation


@dataclass(frozen=True)
class ExecutionRequest:
    """A command to spawn, with its working directory and time budget."""

    command: str
    args: tuple[str, ...] = ()
    working_directory: Path | None = None
    timeout_s: float = 120.0

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]

    @property
    def command_line(self) -> str:
        return shlex.join(self.argv)


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a spawned command. Output fields are already size-bounded."""

    ok: bool
    exit_code: int | None
    timed_out: bool
    command_line: str
    working_directory: str
    stdout: str = ""
    stderr: str = ""
    duration_s: float = 0.0
    rejected: bool = False

    def raise_for_status(self) -> ExecutionResult:
        if self.ok:
            return self
        if self.rejected:
            raise ExecutionDenied(self.stderr or f"Command not allowed: {self.command_line}", self)
        if self.timed_out:
            raise ExecutionTimeout(f"Command timed out: {self.command_line}", self)
        raise ExecutionFailed(
            f"Command failed (code={self.exit_code}): {self.command_line}", self
        )


@dataclass(frozen=True)
class PatchSpec:
    """A validated single-file edit request."""

    path: str
    operations: tuple[PatchOperation, ...]
    commit_message: str = "feat: apply patch"
    notes: str = ""


class PatchState(str, Enum):
    EMPTY = "empty"
    PREPARED = "prepared"
    APPLIED = "applied"


@dataclass
class PendingPatch:
    """A previewed patch waiting for the operator's decision."""

    patch_id: str
    spec: PatchSpec
    original_path: Path
    candidate_path: Path
    diff_text: str
    created_at: float
    state: PatchState = PatchState.PREPARED


@dataclass
class PatchSession:
    """Holds the single pending-patch slot for one operator."""

    operator_id: int | str
    pending: PendingPatch | None = None

    @property
    def state(self) -> PatchState:
        if self.pending is None:
            return PatchState.EMPTY
        return self.pending.state

    def clear(self) -> None:
        self.pending = None


@dataclass(frozen=True)
class VerificationCheck:
    name: str
    argv: tuple[str, ...]
    result: ExecutionResult
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.result.ok


@dataclass
class VerificationReport:
    """Result of the post-apply probe battery."""

    checks: list[VerificationCheck]
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return all(c.ok for c in self.checks)


@dataclass(frozen=True)
class CommitResult:
    stage: ExecutionResult
    commit: ExecutionResult

    @property
    def nothing_to_commit(self) -> bool:
        return not self.commit.ok and "nothing to commit" in self.commit.stdout


@dataclass
class LifecycleOutcome:
    """What a lifecycle operation reports back to the operator."""

    ok: bool
    message: str
    pending: PendingPatch | None = None
    verification: VerificationReport | None = None
    details: dict[str, Any] = field(default_factory=dict)
