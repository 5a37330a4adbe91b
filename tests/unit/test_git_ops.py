"""Unit tests for git_ops.py - staging and committing through the executor."""

from __future__ import annotations

import pytest
from conftest import git_log

from opsbridge.errors import CommitFailed, StageFailed
from opsbridge.executor import CommandAllowlist, ProcessExecutor
from opsbridge.git_ops import GitOps


def _git_ops(repo, subcommands=("status", "diff", "add", "commit")) -> GitOps:
    executor = ProcessExecutor(CommandAllowlist({"git": subcommands}), repo)
    return GitOps(executor, timeout_s=30)


@pytest.mark.asyncio
class TestGitOps:
    async def test_status_includes_branch_line(self, git_repo):
        result = await _git_ops(git_repo).status()
        assert result.ok
        assert result.stdout.startswith("## ")

    async def test_status_lists_modified_file(self, git_repo):
        (git_repo / "index.js").write_text("changed\n")
        result = await _git_ops(git_repo).status()
        assert " M index.js" in result.stdout

    async def test_diff_stat_and_full(self, git_repo):
        (git_repo / "index.js").write_text("changed\n")
        git_ops = _git_ops(git_repo)

        stat = await git_ops.diff_stat()
        assert "index.js" in stat.stdout
        assert "changed" in stat.stdout

        full = await git_ops.diff_full()
        assert "+changed" in full.stdout

    async def test_commit_stages_and_commits(self, git_repo):
        (git_repo / "index.js").write_text("changed\n")
        (git_repo / "new.js").write_text("new\n")

        result = await _git_ops(git_repo).commit("feat: change things")
        assert result.stage.ok
        assert result.commit.ok
        assert not result.nothing_to_commit
        assert git_log(git_repo).splitlines()[0] == "feat: change things"

        status = await _git_ops(git_repo).status()
        assert status.stdout.strip().count("\n") == 0

    async def test_nothing_to_commit_is_not_a_failure(self, git_repo):
        result = await _git_ops(git_repo).commit("chore: noop")
        assert result.nothing_to_commit
        assert git_log(git_repo).splitlines()[0] == "Initial commit"

    async def test_stage_failure_raises(self, git_repo):
        git_ops = _git_ops(git_repo, subcommands=("status", "commit"))
        with pytest.raises(StageFailed) as exc_info:
            await git_ops.commit("feat: x")
        assert exc_info.value.result.rejected

    async def test_commit_failure_raises(self, git_repo):
        (git_repo / "index.js").write_text("changed\n")
        git_ops = _git_ops(git_repo, subcommands=("status", "add"))
        with pytest.raises(CommitFailed) as exc_info:
            await git_ops.commit("feat: x")
        assert exc_info.value.result.exit_code == 126
