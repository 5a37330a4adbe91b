"""Post-apply verification battery.

Probes are read-only and retried to absorb restart latency. Results are purely
informational: nothing here raises.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence

from .config import ProbeConfig, VerificationConfig
from .executor import ProcessExecutor
from .types import ExecutionResult, VerificationCheck, VerificationReport


class VerificationRunner:
    def __init__(
        self,
        executor: ProcessExecutor,
        probes: Sequence[ProbeConfig],
        attempts: int = 6,
        spacing_s: float = 1.0,
        timeout_s: float = 120.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.executor = executor
        self.probes = list(probes)
        self.attempts = max(1, attempts)
        self.spacing_s = spacing_s
        self.timeout_s = timeout_s
        self._sleep = sleep

    @classmethod
    def from_config(cls, executor: ProcessExecutor, config: VerificationConfig) -> VerificationRunner:
        return cls(
            executor,
            config.probes,
            attempts=config.attempts,
            spacing_s=config.spacing_seconds,
            timeout_s=config.timeout_seconds,
        )

    async def _run_probe(self, probe: ProbeConfig) -> VerificationCheck:
        command, *args = probe.argv
        attempt = 1
        result = await self.executor.run(command, args, timeout_s=self.timeout_s)
        # Denied commands stay denied, so only real failures are retried.
        while not (result.ok or result.rejected) and attempt < self.attempts:
            await self._sleep(self.spacing_s)
            attempt += 1
            result = await self.executor.run(command, args, timeout_s=self.timeout_s)
        return VerificationCheck(name=probe.name, argv=tuple(probe.argv), result=result, attempts=attempt)

    def _failed_check(self, probe: ProbeConfig, exc: BaseException) -> VerificationCheck:
        return VerificationCheck(
            name=probe.name,
            argv=tuple(probe.argv),
            result=ExecutionResult(
                ok=False,
                exit_code=-1,
                timed_out=False,
                command_line=" ".join(probe.argv),
                working_directory=str(self.executor.repo_root),
                stderr=str(exc)[: self.executor.output_cap],
            ),
            attempts=0,
        )

    async def run(self) -> VerificationReport:
        """Run every probe concurrently and aggregate pass/fail per check."""
        t0 = time.monotonic()
        probes = [p for p in self.probes if p.argv]
        if not probes:
            return VerificationReport(checks=[], duration_s=0.0)

        results = await asyncio.gather(
            *[self._run_probe(p) for p in probes],
            return_exceptions=True,
        )

        checks: list[VerificationCheck] = []
        for probe, result in zip(probes, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                checks.append(self._failed_check(probe, result))
            else:
                checks.append(result)

        return VerificationReport(checks=checks, duration_s=round(time.monotonic() - t0, 3))
