"""Object graph construction from configuration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .assistant import Assistant, ChatModel
from .config import OpsBridgeConfig
from .diff_preview import DiffPreviewer
from .executor import ProcessExecutor
from .git_ops import GitOps
from .lifecycle import PatchLifecycle
from .llm_client import LLMClient
from .router import CommandRouter
from .safe_paths import PathGuard, ensure_git_ignored
from .supervisor import ProcessSupervisor
from .telemetry import TelemetrySink, prune_telemetry_file
from .verification import VerificationRunner


@dataclass
class OpsBridge:
    config: OpsBridgeConfig
    repo_root: Path
    telemetry: TelemetrySink
    executor: ProcessExecutor
    path_guard: PathGuard
    git_ops: GitOps
    verifier: VerificationRunner
    lifecycle: PatchLifecycle
    router: CommandRouter


def build_telemetry(repo_root: Path, config: OpsBridgeConfig) -> TelemetrySink:
    path = Path(config.telemetry.log_path)
    if not path.is_absolute():
        path = repo_root / path
    resolved_root = repo_root.resolve()
    parent = path.parent.resolve()
    if config.telemetry.enabled and parent != resolved_root and resolved_root in parent.parents:
        # Keep the log out of `git add -A`.
        ensure_git_ignored(parent)
    prune_telemetry_file(path, config.telemetry.retention_days)
    return TelemetrySink(enabled=config.telemetry.enabled, path=path)


def build_app(
    repo_root: Path | str,
    config: OpsBridgeConfig,
    model: ChatModel | None = None,
) -> OpsBridge:
    """Wire every component for `repo_root`.

    `model` replaces the HTTP model client (tests, offline use).
    """
    repo_root = Path(repo_root).resolve()
    telemetry = build_telemetry(repo_root, config)

    executor = ProcessExecutor.from_config(config.executor, repo_root, telemetry=telemetry)
    path_guard = PathGuard.from_config(repo_root, config.paths)
    git_ops = GitOps(executor, timeout_s=config.executor.timeout_seconds)
    verifier = VerificationRunner.from_config(executor, config.verification)
    assistant = Assistant(model if model is not None else LLMClient(config.llm))

    lifecycle = PatchLifecycle(
        path_guard=path_guard,
        assistant=assistant,
        previewer=DiffPreviewer(
            executor,
            repo_root / config.paths.scratch_dir,
            timeout_s=config.executor.timeout_seconds,
        ),
        git_ops=git_ops,
        supervisor=ProcessSupervisor.from_config(executor, config.service),
        verifier=verifier,
        patch_config=config.patch,
        telemetry=telemetry,
    )
    router = CommandRouter(
        operator=config.operator,
        run_policy=config.run,
        lifecycle=lifecycle,
        git_ops=git_ops,
        executor=executor,
        assistant=assistant,
        telemetry=telemetry,
    )
    return OpsBridge(
        config=config,
        repo_root=repo_root,
        telemetry=telemetry,
        executor=executor,
        path_guard=path_guard,
        git_ops=git_ops,
        verifier=verifier,
        lifecycle=lifecycle,
        router=router,
    )
