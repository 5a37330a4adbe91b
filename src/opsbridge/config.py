"""Configuration schema for OpsBridge.

Configuration is loaded from .opsbridge.yml in the repository root.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


class OperatorConfig(BaseModel):
    """The single trusted operator and the reply channel limits."""

    chat_id: int | None = None
    rate_limit_seconds: float = 2.0
    reply_limit: int = 3900
    greetings: list[str] = Field(
        default_factory=lambda: ["hello", "hi", "hey", "yo", "test", "ok", "salut"]
    )


class LLMConfig(BaseModel):
    """OpenAI-compatible chat completions endpoint."""

    base_url: str = "https://api.openai.com/v1"
    model_id: str = "gpt-4.1-mini"
    api_key_env: str = "OPENAI_API_KEY"
    temperature: float = 0.2
    timeout_seconds: float = 60.0
    max_retries: int = 3

    @property
    def api_key(self) -> str:
        return os.getenv(self.api_key_env, "").strip()


class ExecutorConfig(BaseModel):
    """Command allowlist and process bounds.

    An entry maps a command name to the permitted first arguments. An empty list
    permits any arguments.
    """

    allowlist: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "node": ["-v", "--version"],
            "npm": ["ci", "install", "test", "run", "start", "audit"],
            "git": [
                "status",
                "diff",
                "add",
                "commit",
                "checkout",
                "branch",
                "log",
                "show",
                "rev-parse",
                "reset",
                "pull",
            ],
            "pm2": ["status", "list", "restart", "reload", "logs", "save", "describe"],
            "curl": [],
        }
    )
    timeout_seconds: float = 120.0
    output_cap: int = 4000

    @field_validator("output_cap")
    @classmethod
    def validate_output_cap(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("output_cap must be positive")
        return v


class PathsConfig(BaseModel):
    """Locations the path guard refuses to touch."""

    forbidden_names: list[str] = Field(default_factory=lambda: [".env", ".git"])
    forbidden_prefixes: list[str] = Field(
        default_factory=lambda: [".git", "node_modules", "logs", "workspace", ".opsbridge"]
    )
    scratch_dir: str = "workspace"


class PatchConfig(BaseModel):
    """Patch proposal policy."""

    allowed_files: list[str] = Field(default_factory=lambda: ["index.js", "telegram_bridge.js"])
    min_line_ratio: float = 0.7
    max_file_bytes: int = 180_000
    diff_preview_chars: int = 3200

    @field_validator("min_line_ratio")
    @classmethod
    def validate_ratio(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("min_line_ratio must be between 0 and 1")
        return v


class ServiceConfig(BaseModel):
    """The supervised service restarted after an apply."""

    supervisor: str = "pm2"
    name: str = "orchestrator"
    restart_timeout_seconds: float = 120.0


class ProbeConfig(BaseModel):
    name: str
    argv: list[str]


def _default_probes() -> list[ProbeConfig]:
    base = "http://127.0.0.1:3000"
    return [
        ProbeConfig(name="curl /health", argv=["curl", "-sf", f"{base}/health"]),
        ProbeConfig(name="curl /version", argv=["curl", "-sf", f"{base}/version"]),
        ProbeConfig(
            name="curl /orchestrate",
            argv=[
                "curl",
                "-sf",
                "-X",
                "POST",
                f"{base}/orchestrate",
                "-H",
                "Content-Type: application/json",
                "-d",
                '{"text":"ping"}',
            ],
        ),
        ProbeConfig(name="pm2 list", argv=["pm2", "list"]),
    ]


class VerificationConfig(BaseModel):
    """Post-apply probe battery."""

    attempts: int = 6
    spacing_seconds: float = 1.0
    timeout_seconds: float = 120.0
    probes: list[ProbeConfig] = Field(default_factory=_default_probes)

    @field_validator("attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("attempts must be at least 1")
        return v


class RunConfig(BaseModel):
    """Commands the /run surface refuses before the allowlist is consulted."""

    blocked_commands: list[str] = Field(
        default_factory=lambda: [
            "rm",
            "shutdown",
            "reboot",
            "mkfs",
            "dd",
            "kill",
            "pkill",
            "poweroff",
            "chmod",
            "chown",
            "printenv",
            "env",
        ]
    )
    blocked_substrings: list[str] = Field(default_factory=lambda: [".env"])


class TelemetryConfig(BaseModel):
    """Telemetry and logging configuration."""

    enabled: bool = True
    log_path: str = ".opsbridge/telemetry.jsonl"
    retention_days: int = 30


class OpsBridgeConfig(BaseModel):
    """Complete OpsBridge configuration."""

    operator: OperatorConfig = Field(default_factory=OperatorConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    patch: PatchConfig = Field(default_factory=PatchConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    run: RunConfig = Field(default_factory=RunConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    @classmethod
    def load_from_file(cls, config_path: Path | str) -> OpsBridgeConfig:
        """Load configuration from YAML file."""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f)

        return cls(**(data or {}))

    @classmethod
    def load_from_repo(cls, repo_path: Path | str) -> OpsBridgeConfig:
        """Load configuration from repository's .opsbridge.yml."""
        config_path = Path(repo_path) / ".opsbridge.yml"

        if not config_path.exists():
            return cls()

        return cls.load_from_file(config_path)

    def apply_env_overrides(self) -> None:
        """Apply environment variable overrides to configuration."""
        if v := os.getenv("OPSBRIDGE_OPERATOR_CHAT_ID"):
            self.operator.chat_id = int(v)

        if url := os.getenv("OPSBRIDGE_LLM_BASE_URL"):
            self.llm.base_url = url
        if model := os.getenv("OPSBRIDGE_LLM_MODEL") or os.getenv("OPENAI_MODEL"):
            self.llm.model_id = model
        if timeout := os.getenv("OPSBRIDGE_LLM_TIMEOUT_SECONDS"):
            self.llm.timeout_seconds = float(timeout)

        if timeout := os.getenv("OPSBRIDGE_EXEC_TIMEOUT_SECONDS"):
            self.executor.timeout_seconds = float(timeout)

        if name := os.getenv("OPSBRIDGE_SERVICE_NAME"):
            self.service.name = name

        if v := os.getenv("OPSBRIDGE_VERIFY_ATTEMPTS"):
            self.verification.attempts = int(v)
        if v := os.getenv("OPSBRIDGE_VERIFY_SPACING_SECONDS"):
            self.verification.spacing_seconds = float(v)

        if log_path := os.getenv("OPSBRIDGE_TELEMETRY_PATH"):
            self.telemetry.log_path = log_path
        if os.getenv("OPSBRIDGE_TELEMETRY_DISABLED") == "1":
            self.telemetry.enabled = False


def load_config(repo_path: Path | str) -> OpsBridgeConfig:
    """
    Load configuration for a repository.

    Args:
        repo_path: Path to the repository

    Returns:
        Loaded and validated configuration
    """
    config = OpsBridgeConfig.load_from_repo(repo_path)
    config.apply_env_overrides()
    return config
