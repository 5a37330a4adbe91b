from __future__ import annotations

from .config import ServiceConfig
from .executor import ProcessExecutor
from .types import ExecutionResult


class ProcessSupervisor:
    """Named restart of the live service through the process-supervisor binary."""

    def __init__(self, executor: ProcessExecutor, command: str = "pm2", service_name: str = "orchestrator", timeout_s: float = 120.0):
        self.executor = executor
        self.command = command
        self.service_name = service_name
        self.timeout_s = timeout_s

    @classmethod
    def from_config(cls, executor: ProcessExecutor, config: ServiceConfig) -> ProcessSupervisor:
        return cls(executor, config.supervisor, config.name, config.restart_timeout_seconds)

    async def restart(self) -> ExecutionResult:
        return await self.executor.run(self.command, ["restart", self.service_name], timeout_s=self.timeout_s)
