"""Integration tests for the operator-driven patch flow over a real git repository."""

from __future__ import annotations

import json
import sys

import pytest
from conftest import HEALTH_ROUTE, FakeModel, git_log, proposal

from opsbridge.app import build_app
from opsbridge.status import compute_status

OPERATOR = 42


@pytest.fixture
def live_config(config, tmp_path):
    """Keep telemetry and provide a stand-in for the process supervisor."""
    restart = tmp_path / "fake_pm2.py"
    restart.write_text("import sys\nprint('restarted', sys.argv[-1])\n")

    config.telemetry.enabled = True
    config.telemetry.log_path = str(tmp_path / "telemetry.jsonl")
    return config, restart


@pytest.mark.asyncio
class TestPatchFlow:
    async def test_propose_test_apply(self, git_repo, live_config):
        config, _ = live_config
        app = build_app(git_repo, config, model=FakeModel(proposal()))
        router = app.router

        preview = await router.handle(OPERATOR, "/patch add a /version route")
        assert "Patch ID:" in preview
        assert '+app.get("/version"' in preview

        tested = await router.handle(OPERATOR, "/patch test")
        assert tested.startswith("Patch tests:")
        assert "- python ok: ok=True" in tested

        applied = await router.handle(OPERATOR, "/patch apply")
        assert "Patch applied & committed" in applied
        assert "Commit msg: feat: add version route" in applied

        assert HEALTH_ROUTE in (git_repo / "index.js").read_text()
        assert '"/version"' in (git_repo / "index.js").read_text()
        assert git_log(git_repo).splitlines()[0] == "feat: add version route"
        assert router.session_for(OPERATOR).pending is None

        status = await router.handle(OPERATOR, "/git status")
        assert "index.js" not in status
        assert "workspace" not in status

    async def test_restart_runs_against_configured_service(self, git_repo, live_config):
        config, restart = live_config
        app = build_app(git_repo, config, model=FakeModel(proposal()))
        # Run the stand-in script as the supervisor binary.
        app.lifecycle.supervisor.command = sys.executable
        original_run = app.executor.run

        async def run(command, args=(), cwd=None, timeout_s=None):
            if command == sys.executable and list(args[:1]) == ["restart"]:
                args = [str(restart), *args]
            return await original_run(command, args, cwd=cwd, timeout_s=timeout_s)

        app.executor.run = run

        await app.router.handle(OPERATOR, "/patch add a /version route")
        outcome_text = await app.router.handle(OPERATOR, "/patch apply")

        assert "Restart orchestrator: ok=True code=0" in outcome_text

    async def test_rejected_patch_leaves_repo_untouched(self, git_repo, live_config):
        config, _ = live_config
        ops = [{"op": "replace_once", "match": "does not exist", "text": "x"}]
        app = build_app(git_repo, config, model=FakeModel(proposal(ops=ops)))

        text = await app.router.handle(OPERATOR, "/patch break things")
        assert text.startswith("/patch error:")
        assert git_log(git_repo).splitlines() == ["Initial commit"]

        applied = await app.router.handle(OPERATOR, "/patch apply")
        assert "No pending patch" in applied

    async def test_telemetry_feeds_status(self, git_repo, live_config, tmp_path):
        config, _ = live_config
        app = build_app(git_repo, config, model=FakeModel(proposal(), "garbage"))

        await app.router.handle(OPERATOR, "/patch add a /version route")
        await app.router.handle(OPERATOR, "/patch apply")
        await app.router.handle(OPERATOR, "/patch again")
        await app.router.handle(7, "/git status")

        st = compute_status(tmp_path / "telemetry.jsonl")
        assert st["patches_proposed"] == 1
        assert st["patches_rejected"] == 1
        # No supervisor is allowlisted, so the one apply counts as failed.
        assert st["apply_success_rate"] == 0.0
        assert st["operator_denied"] == 1
        assert st["commands_executed"] > 0

        events = [json.loads(ln) for ln in (tmp_path / "telemetry.jsonl").read_text().splitlines()]
        assert all(set(e) == {"timestamp", "run_id", "type", "data"} for e in events)
