"""Unit tests for executor.py - allowlisted, bounded process execution."""

from __future__ import annotations

import json
import sys

import pytest

from opsbridge.errors import ExecutionDenied, ExecutionFailed, ExecutionTimeout
from opsbridge.executor import EXIT_REJECTED, EXIT_SPAWN_FAILED, CommandAllowlist, ProcessExecutor
from opsbridge.telemetry import TelemetrySink
from opsbridge.types import ExecutionRequest, ExecutionResult

PY = sys.executable


class TestCommandAllowlist:
    """Test allowlist lookups."""

    def setup_method(self):
        self.allowlist = CommandAllowlist(
            {
                "git": ["status", "diff"],
                "curl": [],
            }
        )

    def test_unknown_command_denied(self):
        assert not self.allowlist.is_allowed("rm", ["-rf", "/"])

    def test_permitted_first_argument(self):
        assert self.allowlist.is_allowed("git", ["status"])
        assert self.allowlist.is_allowed("git", ["diff", "--stat"])

    def test_other_first_argument_denied(self):
        assert not self.allowlist.is_allowed("git", ["push", "origin"])

    def test_only_first_argument_is_checked(self):
        # "status" appearing later does not make "push" acceptable.
        assert not self.allowlist.is_allowed("git", ["push", "status"])

    def test_no_arguments_denied_when_set_is_not_empty(self):
        assert not self.allowlist.is_allowed("git", [])

    def test_empty_set_permits_anything(self):
        assert self.allowlist.is_allowed("curl", [])
        assert self.allowlist.is_allowed("curl", ["-sf", "http://127.0.0.1:3000/health"])


@pytest.fixture
def executor(tmp_path):
    return ProcessExecutor(
        CommandAllowlist({PY: [], "definitely-not-a-binary-xyz": []}),
        tmp_path,
        default_timeout_s=10,
        output_cap=100,
    )


@pytest.mark.asyncio
class TestProcessExecutor:
    """Test spawning, bounding and refusal."""

    async def test_successful_command(self, executor, tmp_path):
        result = await executor.run(PY, ["-c", "print('hello')"])
        assert result.ok
        assert result.exit_code == 0
        assert result.stdout.strip() == "hello"
        assert not result.timed_out
        assert not result.rejected
        assert result.working_directory == str(tmp_path.resolve())

    async def test_nonzero_exit_is_not_ok(self, executor):
        result = await executor.run(PY, ["-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"])
        assert not result.ok
        assert result.exit_code == 3
        assert "boom" in result.stderr

    async def test_output_is_capped(self, executor):
        result = await executor.run(PY, ["-c", "print('x' * 50000)"])
        assert result.ok
        assert len(result.stdout) == 100

    async def test_stderr_is_capped(self, executor):
        result = await executor.run(PY, ["-c", "import sys; sys.stderr.write('e' * 50000)"])
        assert len(result.stderr) == 100

    async def test_timeout_kills_process(self, executor):
        result = await executor.run(PY, ["-c", "import time; time.sleep(30)"], timeout_s=0.5)
        assert result.timed_out
        assert not result.ok
        assert result.duration_s < 10

    async def test_denied_command_is_rejected_without_spawning(self, executor):
        result = await executor.run("rm", ["-rf", "/"])
        assert result.rejected
        assert not result.ok
        assert result.exit_code == EXIT_REJECTED
        assert "not allowed" in result.stderr

    async def test_nul_byte_in_argument_rejected(self, executor):
        result = await executor.run(PY, ["-c", "print(1)\x00"])
        assert result.rejected
        assert result.exit_code == EXIT_REJECTED

    async def test_missing_binary_yields_spawn_failure(self, executor):
        result = await executor.run("definitely-not-a-binary-xyz", [])
        assert not result.ok
        assert not result.rejected
        assert result.exit_code == EXIT_SPAWN_FAILED
        assert "Failed to start" in result.stderr

    async def test_no_shell_interpretation(self, executor):
        result = await executor.run(PY, ["-c", "import sys; print(sys.argv[1])", "$(whoami);ls"])
        assert result.stdout.strip() == "$(whoami);ls"

    async def test_execute_with_explicit_working_directory(self, executor, tmp_path):
        sub = tmp_path / "sub"
        sub.mkdir()
        result = await executor.execute(
            ExecutionRequest(
                command=PY,
                args=("-c", "import os; print(os.getcwd())"),
                working_directory=sub,
                timeout_s=10,
            )
        )
        assert result.ok
        assert result.stdout.strip() == str(sub.resolve())

    async def test_every_execution_is_logged(self, tmp_path):
        log = tmp_path / "telemetry.jsonl"
        executor = ProcessExecutor(
            CommandAllowlist({PY: []}),
            tmp_path,
            telemetry=TelemetrySink(enabled=True, path=log),
        )
        await executor.run(PY, ["-c", "print('sk-abcdefghijklmnopqrstuvwx')"])
        await executor.run("rm", ["-rf", "/"])

        events = [json.loads(ln) for ln in log.read_text().splitlines()]
        assert [e["type"] for e in events] == ["command_executed", "command_executed"]
        assert "sk-REDACTED" in events[0]["data"]["stdout_head"]
        assert events[1]["data"]["rejected"] is True


def _result(**kwargs) -> ExecutionResult:
    base = dict(ok=False, exit_code=1, timed_out=False, command_line="git push", working_directory="/repo")
    base.update(kwargs)
    return ExecutionResult(**base)


class TestRaiseForStatus:
    def test_ok_result_is_returned(self):
        result = _result(ok=True, exit_code=0)
        assert result.raise_for_status() is result

    def test_rejected_raises_denied(self):
        with pytest.raises(ExecutionDenied):
            _result(rejected=True, exit_code=EXIT_REJECTED).raise_for_status()

    def test_timeout_raises_timeout(self):
        with pytest.raises(ExecutionTimeout):
            _result(timed_out=True, exit_code=-9).raise_for_status()

    def test_failure_carries_result(self):
        result = _result(exit_code=2)
        with pytest.raises(ExecutionFailed) as exc_info:
            result.raise_for_status()
        assert exc_info.value.result is result
