"""Global pytest configuration for hermetic test runs."""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from opsbridge.config import OpsBridgeConfig, ProbeConfig
from opsbridge.errors import GenerationFailed

INDEX_JS = """const express = require("express");
const app = express();

app.get("/health", (req, res) => res.json({ ok: true }));

app.listen(3000);
"""

HEALTH_ROUTE = 'app.get("/health", (req, res) => res.json({ ok: true }));'
VERSION_ROUTE = '\napp.get("/version", (req, res) => res.json({ version: "1.0.0" }));'


def pytest_sessionstart(session):  # noqa: ARG001
    # Prevent accidental outbound network during tests (integration/unit).
    os.environ.setdefault("OPSBRIDGE_DISABLE_NETWORK", "1")


def _git(repo: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True)


@pytest.fixture
def git_repo(tmp_path):
    """Create a temporary git repository holding a small service."""
    repo_path = tmp_path / "service"
    repo_path.mkdir()

    _git(repo_path, "init")
    _git(repo_path, "config", "user.email", "test@example.com")
    _git(repo_path, "config", "user.name", "Test User")

    (repo_path / "index.js").write_text(INDEX_JS)
    (repo_path / "telegram_bridge.js").write_text("module.exports = {};\n")
    (repo_path / ".env").write_text("SECRET=1\n")
    (repo_path / ".gitignore").write_text(".env\n")

    _git(repo_path, "add", ".")
    _git(repo_path, "commit", "-m", "Initial commit")

    return repo_path


@pytest.fixture
def config():
    """Configuration that runs against a temporary repo without pm2, curl or telemetry."""
    cfg = OpsBridgeConfig()
    cfg.operator.chat_id = 42
    cfg.telemetry.enabled = False
    cfg.executor.timeout_seconds = 30
    cfg.executor.allowlist = {
        "git": ["status", "diff", "add", "commit", "log"],
        sys.executable: [],
    }
    cfg.verification.attempts = 1
    cfg.verification.spacing_seconds = 0
    cfg.verification.probes = [
        ProbeConfig(name="python ok", argv=[sys.executable, "-c", "print('ok')"]),
    ]
    return cfg


class FakeModel:
    """Scripted stand-in for the chat completions client."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls: list[list[dict[str, str]]] = []

    async def chat_completion(self, messages, temperature=None, cancel_event=None):
        self.calls.append(messages)
        if not self.replies:
            raise GenerationFailed("no scripted reply")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


def proposal(ops=None, path="index.js", commit_message="feat: add version route", notes="adds /version"):
    if ops is None:
        ops = [{"op": "insert_after", "match": HEALTH_ROUTE, "text": VERSION_ROUTE}]
    return json.dumps(
        {
            "commit_message": commit_message,
            "notes": notes,
            "files": [{"path": path, "ops": ops}],
        }
    )


def git_log(repo: Path) -> str:
    return subprocess.run(
        ["git", "log", "--format=%s"], cwd=repo, check=True, capture_output=True, text=True
    ).stdout
