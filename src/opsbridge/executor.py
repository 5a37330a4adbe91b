"""Allowlisted, bounded process execution.

Key security properties:
- Executes an argv list directly (no shell).
- The allowlist is checked against the command and its first argument before
  anything is spawned.
- Captured output is bounded no matter how much the child writes.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from .config import ExecutorConfig
from .telemetry import NULL_SINK, TelemetrySink
from .types import ExecutionRequest, ExecutionResult

# Exit codes for results that never reached a running process.
EXIT_REJECTED = 126
EXIT_SPAWN_FAILED = 127

_READ_CHUNK = 65536
# How long to keep reading pipes after the child exited or was killed. A
# grandchild holding the pipe open must not stall the caller.
_DRAIN_GRACE_S = 2.0


class CommandAllowlist:
    """Maps a command name to the set of permitted first arguments.

    An empty set permits any arguments. Commands absent from the table are
    always denied.
    """

    def __init__(self, entries: Mapping[str, Iterable[str]]):
        self.entries: dict[str, frozenset[str]] = {
            cmd: frozenset(args) for cmd, args in entries.items()
        }

    @classmethod
    def from_config(cls, config: ExecutorConfig) -> CommandAllowlist:
        return cls(config.allowlist)

    def is_allowed(self, command: str, args: Sequence[str] = ()) -> bool:
        permitted = self.entries.get(command)
        if permitted is None:
            return False
        if not permitted:
            return True
        if not args:
            return False
        return args[0] in permitted


async def _drain(stream: asyncio.StreamReader | None, buf: bytearray, limit: int) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        room = limit - len(buf)
        if room > 0:
            buf.extend(chunk[:room])


class ProcessExecutor:
    """Spawns allowlisted commands with a timeout and bounded output.

    `execute` never raises for command failures: denial, spawn errors, non-zero
    exits and timeouts all come back as an ExecutionResult.
    """

    def __init__(
        self,
        allowlist: CommandAllowlist,
        repo_root: Path,
        default_timeout_s: float = 120.0,
        output_cap: int = 4000,
        telemetry: TelemetrySink | None = None,
    ):
        self.allowlist = allowlist
        self.repo_root = Path(repo_root)
        self.default_timeout_s = default_timeout_s
        self.output_cap = output_cap
        self.telemetry = telemetry or NULL_SINK

    @classmethod
    def from_config(
        cls,
        config: ExecutorConfig,
        repo_root: Path,
        telemetry: TelemetrySink | None = None,
    ) -> ProcessExecutor:
        return cls(
            CommandAllowlist.from_config(config),
            repo_root,
            default_timeout_s=config.timeout_seconds,
            output_cap=config.output_cap,
            telemetry=telemetry,
        )

    def _bounded(self, raw: bytes | bytearray) -> str:
        return bytes(raw).decode("utf-8", errors="replace")[: self.output_cap]

    def _refuse(
        self, request: ExecutionRequest, cwd: Path, exit_code: int, reason: str, t0: float, *, rejected: bool
    ) -> ExecutionResult:
        return ExecutionResult(
            ok=False,
            exit_code=exit_code,
            timed_out=False,
            command_line=request.command_line,
            working_directory=str(cwd),
            stdout="",
            stderr=self._bounded(reason.encode("utf-8")),
            duration_s=round(time.monotonic() - t0, 3),
            rejected=rejected,
        )

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        result = await self._execute(request)
        self.telemetry.log_execution("exec", result)
        return result

    async def _execute(self, request: ExecutionRequest) -> ExecutionResult:
        t0 = time.monotonic()
        cwd = Path(request.working_directory or self.repo_root).resolve()

        if any("\x00" in a for a in request.argv):
            return self._refuse(request, cwd, EXIT_REJECTED, "NUL bytes not allowed in arguments", t0, rejected=True)

        if not self.allowlist.is_allowed(request.command, request.args):
            return self._refuse(
                request, cwd, EXIT_REJECTED, f"Command not allowed: {request.command_line}", t0, rejected=True
            )

        try:
            proc = await asyncio.create_subprocess_exec(
                *request.argv,
                cwd=str(cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as exc:
            return self._refuse(
                request, cwd, EXIT_SPAWN_FAILED, f"Failed to start {request.command}: {exc}", t0, rejected=False
            )

        # UTF-8 needs at most 4 bytes per character.
        limit = self.output_cap * 4
        out_buf = bytearray()
        err_buf = bytearray()
        readers = asyncio.gather(
            _drain(proc.stdout, out_buf, limit),
            _drain(proc.stderr, err_buf, limit),
        )

        timed_out = False
        try:
            try:
                await asyncio.wait_for(proc.wait(), timeout=request.timeout_s)
            except asyncio.TimeoutError:
                timed_out = True
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

            try:
                await asyncio.wait_for(readers, timeout=_DRAIN_GRACE_S)
            except asyncio.TimeoutError:
                pass
        finally:
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
            if not readers.done():
                readers.cancel()

        exit_code = proc.returncode
        return ExecutionResult(
            ok=exit_code == 0 and not timed_out,
            exit_code=exit_code,
            timed_out=timed_out,
            command_line=request.command_line,
            working_directory=str(cwd),
            stdout=self._bounded(out_buf),
            stderr=self._bounded(err_buf),
            duration_s=round(time.monotonic() - t0, 3),
        )

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        cwd: Path | None = None,
        timeout_s: float | None = None,
    ) -> ExecutionResult:
        return await self.execute(
            ExecutionRequest(
                command=command,
                args=tuple(args),
                working_directory=cwd,
                timeout_s=self.default_timeout_s if timeout_s is None else timeout_s,
            )
        )
