from __future__ import annotations

from .errors import CommitFailed, StageFailed
from .executor import ProcessExecutor
from .types import CommitResult, ExecutionResult


class GitOps:
    """Version-control operations, always spawned through the executor."""

    def __init__(self, executor: ProcessExecutor, timeout_s: float = 120.0):
        self.executor = executor
        self.timeout_s = timeout_s

    async def _git(self, *args: str) -> ExecutionResult:
        return await self.executor.run("git", list(args), timeout_s=self.timeout_s)

    async def status(self) -> ExecutionResult:
        return await self._git("status", "--porcelain=v1", "-b")

    async def diff_stat(self) -> ExecutionResult:
        return await self._git("diff", "--stat")

    async def diff_full(self) -> ExecutionResult:
        return await self._git("diff")

    async def commit(self, message: str) -> CommitResult:
        """Stage everything, then commit.

        Raises StageFailed or CommitFailed with the underlying result attached.
        An empty commit ("nothing to commit") is not a failure.
        """
        stage = await self._git("add", "-A")
        if not stage.ok:
            raise StageFailed(f"git add -A failed: {stage.stderr.strip() or stage.exit_code}", stage)

        commit = await self._git("commit", "-m", message)
        result = CommitResult(stage=stage, commit=commit)
        if not commit.ok and not result.nothing_to_commit:
            raise CommitFailed(
                f"git commit failed: {commit.stderr.strip() or commit.stdout.strip() or commit.exit_code}",
                commit,
            )
        return result
