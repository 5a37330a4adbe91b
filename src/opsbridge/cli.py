"""Command-line interface for OpsBridge.

Commands:
- opsbridge console <repo_path>: Local operator console over the command router
- opsbridge exec <repo_path> <cmd> [args...]: Run one allowlisted command
- opsbridge verify <repo_path>: Run the verification battery
- opsbridge init <repo_path>: Write a default .opsbridge.yml
- opsbridge status <repo_path>: Show metrics derived from telemetry
- opsbridge telemetry tail <repo_path>: Print recent telemetry events
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections import deque
from pathlib import Path

import click

from . import __version__
from .app import OpsBridge, build_app, build_telemetry
from .config import OpsBridgeConfig, load_config
from .report import format_execution, format_verification
from .status import StatusWindow, compute_status

# Console sessions act as the operator when no chat id is configured.
CONSOLE_CHAT_ID = 0


def _load(repo_path: Path, config: str | None) -> OpsBridgeConfig:
    if config:
        cfg = OpsBridgeConfig.load_from_file(config)
        cfg.apply_env_overrides()
        return cfg
    return load_config(repo_path)


@click.group()
@click.version_option(version=__version__, prog_name="opsbridge")
def cli() -> None:
    """OpsBridge - remote operations and self-patching agent."""
    pass


async def _console_loop(app: OpsBridge, chat_id: int) -> None:
    loop = asyncio.get_running_loop()
    while True:
        try:
            line = await loop.run_in_executor(None, input, "opsbridge> ")
        except EOFError:
            return
        if line.strip() in {"exit", "quit"}:
            return
        reply = await app.router.handle(chat_id, line)
        if reply:
            click.echo(reply)
            click.echo()


@cli.command()
@click.argument("repo_path", type=click.Path(exists=True, file_okay=False))
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
def console(repo_path: str, config: str | None) -> None:
    """Talk to the agent from the terminal as the operator.

    Every line is handled exactly like a chat message (/git, /patch, /run,
    free text). Type 'exit' or send EOF to quit.

    Example:
        opsbridge console /srv/orchestrator
    """
    repo_path_obj = Path(repo_path).resolve()
    cfg = _load(repo_path_obj, config)
    if cfg.operator.chat_id is None:
        cfg.operator.chat_id = CONSOLE_CHAT_ID

    app = build_app(repo_path_obj, cfg)
    click.echo(f"OpsBridge console: {repo_path_obj}")
    click.echo("Type /help for commands, 'exit' to quit.")
    click.echo()

    try:
        asyncio.run(_console_loop(app, cfg.operator.chat_id))
    except KeyboardInterrupt:
        click.echo()
    sys.exit(0)


@cli.command("exec", context_settings={"ignore_unknown_options": True})
@click.argument("repo_path", type=click.Path(exists=True, file_okay=False))
@click.argument("command")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
@click.option("--timeout", type=float, default=None, help="Timeout in seconds")
def exec_command(
    repo_path: str, command: str, args: tuple[str, ...], config: str | None, timeout: float | None
) -> None:
    """Run one allowlisted command in the repository.

    Example:
        opsbridge exec /srv/orchestrator git status
    """
    repo_path_obj = Path(repo_path).resolve()
    app = build_app(repo_path_obj, _load(repo_path_obj, config))

    result = asyncio.run(app.executor.run(command, args, timeout_s=timeout))
    click.echo(format_execution(result))
    sys.exit(0 if result.ok else 1)


@cli.command()
@click.argument("repo_path", type=click.Path(exists=True, file_okay=False))
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
def verify(repo_path: str, config: str | None) -> None:
    """Run the post-apply verification probes without changing anything.

    Example:
        opsbridge verify /srv/orchestrator
    """
    repo_path_obj = Path(repo_path).resolve()
    app = build_app(repo_path_obj, _load(repo_path_obj, config))

    click.echo(f"Verifying service: {app.config.service.name}")
    click.echo()

    report = asyncio.run(app.verifier.run())
    for line in format_verification(report, stream_chars=200):
        click.echo(line)

    click.echo()
    click.echo("✓ All checks passed!" if report.ok else "✗ Some checks failed")
    click.echo(f"Total duration: {report.duration_s:.2f}s")

    sys.exit(0 if report.ok else 1)


DEFAULT_CONFIG = """# OpsBridge Configuration

operator:
  chat_id: null          # or OPSBRIDGE_OPERATOR_CHAT_ID
  rate_limit_seconds: 2
  reply_limit: 3900

llm:
  base_url: https://api.openai.com/v1
  model_id: gpt-4.1-mini
  api_key_env: OPENAI_API_KEY
  temperature: 0.2
  timeout_seconds: 60

executor:
  timeout_seconds: 120
  output_cap: 4000
  allowlist:
    node: ["-v", "--version"]
    npm: [ci, install, test, run, start, audit]
    git: [status, diff, add, commit, checkout, branch, log, show, rev-parse, reset, pull]
    pm2: [status, list, restart, reload, logs, save, describe]
    curl: []

paths:
  forbidden_names: [.env, .git]
  forbidden_prefixes: [.git, node_modules, logs, workspace, .opsbridge]
  scratch_dir: workspace

patch:
  allowed_files: [index.js, telegram_bridge.js]
  min_line_ratio: 0.7
  max_file_bytes: 180000

service:
  supervisor: pm2
  name: orchestrator

verification:
  attempts: 6
  spacing_seconds: 1.0

telemetry:
  enabled: true
  log_path: .opsbridge/telemetry.jsonl
  retention_days: 30
"""


@cli.command()
@click.argument("repo_path", type=click.Path(exists=True, file_okay=False))
def init(repo_path: str) -> None:
    """Initialize OpsBridge configuration in a repository.

    Creates a default .opsbridge.yml configuration file.

    Example:
        opsbridge init /srv/orchestrator
    """
    repo_path_obj = Path(repo_path).resolve()
    config_path = repo_path_obj / ".opsbridge.yml"

    if config_path.exists():
        click.echo(f"Configuration already exists: {config_path}")
        if not click.confirm("Overwrite?"):
            return

    config_path.write_text(DEFAULT_CONFIG)
    click.echo(f"✓ Created configuration: {config_path}")
    click.echo()
    click.echo("Next steps:")
    click.echo("1. Set operator.chat_id (or OPSBRIDGE_OPERATOR_CHAT_ID)")
    click.echo("2. Export the model API key named by llm.api_key_env")
    click.echo("3. Try it locally: opsbridge console .")


@cli.command()
@click.argument("repo_path", type=click.Path(exists=True, file_okay=False))
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
@click.option(
    "--format",
    "-f",
    "format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
)
@click.option(
    "--window-minutes",
    type=int,
    default=60,
    show_default=True,
    help="Metrics window (best-effort from telemetry).",
)
def status(repo_path: str, config: str | None, format: str, window_minutes: int) -> None:
    """Show operational metrics from telemetry."""
    repo_path_obj = Path(repo_path).resolve()
    cfg = _load(repo_path_obj, config)

    telemetry_path = build_telemetry(repo_path_obj, cfg).path
    st = compute_status(telemetry_path, window=StatusWindow(seconds=max(1, window_minutes) * 60.0))

    if format == "json":
        click.echo(json.dumps(st, indent=2))
        return

    click.echo(f"Telemetry: {telemetry_path}")
    click.echo(f"Window: {window_minutes} minutes")
    click.echo(f"Patches proposed: {st['patches_proposed']}")
    click.echo(f"Patches rejected: {st['patches_rejected']}")
    click.echo(f"Patches cancelled: {st['patches_cancelled']}")
    click.echo(f"Apply success rate: {st['apply_success_rate']}")
    click.echo(f"Verify success rate: {st['verify_success_rate']}")
    click.echo(f"Commands executed: {st['commands_executed']} (denied {st['commands_denied']})")

    last = st.get("last_apply") or {}
    if last:
        click.echo()
        click.echo(f"Last apply: patch={last.get('run_id')} event={last.get('type')}")


@cli.group()
def telemetry() -> None:
    """Telemetry utilities."""


@telemetry.command("tail")
@click.argument("repo_path", type=click.Path(exists=True, file_okay=False))
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
@click.option(
    "--lines",
    "-n",
    type=int,
    default=50,
    show_default=True,
    help="Number of telemetry lines to show.",
)
def telemetry_tail(repo_path: str, config: str | None, lines: int) -> None:
    """Print the last N telemetry events."""
    repo_path_obj = Path(repo_path).resolve()
    telemetry_path = build_telemetry(repo_path_obj, _load(repo_path_obj, config)).path

    if not telemetry_path.exists():
        raise click.ClickException(f"Telemetry file not found: {telemetry_path}")

    with open(telemetry_path, encoding="utf-8") as f:
        tail = deque(f, maxlen=max(0, lines))

    for ln in tail:
        click.echo(ln, nl=False)


def main() -> None:
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
