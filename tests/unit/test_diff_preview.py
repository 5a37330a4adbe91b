"""Unit tests for diff_preview.py - snapshot and diff rendering."""

from __future__ import annotations

import pytest

from opsbridge.diff_preview import DiffPreviewer
from opsbridge.errors import DiffPreviewFailed
from opsbridge.executor import CommandAllowlist, ProcessExecutor


def _previewer(tmp_path, allowlist=None) -> DiffPreviewer:
    executor = ProcessExecutor(CommandAllowlist(allowlist or {"git": ["diff"]}), tmp_path)
    return DiffPreviewer(executor, tmp_path / "workspace", timeout_s=30)


@pytest.mark.asyncio
class TestDiffPreviewer:
    async def test_diff_shows_changes(self, tmp_path):
        previewer = _previewer(tmp_path)
        preview = await previewer.preview("a\nb\n", "a\nc\n", patch_id="p1", name="index.js")

        assert "-b" in preview.diff_text
        assert "+c" in preview.diff_text
        assert preview.original_path.name == "orig_p1_index.js"
        assert preview.candidate_path.name == "new_p1_index.js"
        assert preview.original_path.read_text() == "a\nb\n"
        assert preview.candidate_path.read_text() == "a\nc\n"

    async def test_identical_content_reports_no_diff(self, tmp_path):
        preview = await _previewer(tmp_path).preview("same\n", "same\n", patch_id="p2", name="index.js")
        assert preview.diff_text == "(no diff)"

    async def test_snapshots_preserve_line_endings(self, tmp_path):
        preview = await _previewer(tmp_path).preview("a\r\n", "b\r\n", patch_id="p3", name="index.js")
        assert preview.candidate_path.read_bytes() == b"b\r\n"

    async def test_scratch_dir_is_git_ignored(self, tmp_path):
        await _previewer(tmp_path).preview("a", "b", patch_id="p4", name="index.js")
        assert (tmp_path / "workspace" / ".gitignore").read_text() == "*\n"

    async def test_nested_name_uses_basename(self, tmp_path):
        preview = await _previewer(tmp_path).preview("a", "b", patch_id="p5", name="src/app.js")
        assert preview.candidate_path.parent == tmp_path / "workspace"
        assert preview.candidate_path.name == "new_p5_app.js"

    async def test_rejected_diff_command_fails(self, tmp_path):
        previewer = _previewer(tmp_path, allowlist={"git": ["status"]})
        with pytest.raises(DiffPreviewFailed) as exc_info:
            await previewer.preview("a", "b", patch_id="p6", name="index.js")
        assert exc_info.value.result.rejected

    async def test_failed_diff_removes_its_snapshots(self, tmp_path):
        previewer = _previewer(tmp_path, allowlist={"git": ["status"]})
        with pytest.raises(DiffPreviewFailed):
            await previewer.preview("a", "b", patch_id="p7", name="index.js")

        assert list((tmp_path / "workspace").glob("*_p7_*")) == []
        assert (tmp_path / "workspace" / ".gitignore").exists()
