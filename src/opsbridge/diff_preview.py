from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .errors import DiffPreviewFailed
from .executor import ProcessExecutor
from .safe_paths import ensure_git_ignored

# `git diff --no-index` exits 0 for identical files and 1 when they differ.
_DIFF_OK_CODES = (0, 1)


@dataclass(frozen=True)
class DiffPreview:
    original_path: Path
    candidate_path: Path
    diff_text: str


class DiffPreviewer:
    """Snapshots original and candidate content and renders a diff between them."""

    def __init__(self, executor: ProcessExecutor, scratch_dir: Path, timeout_s: float = 120.0):
        self.executor = executor
        self.scratch_dir = Path(scratch_dir)
        self.timeout_s = timeout_s

    def _snapshot(self, prefix: str, patch_id: str, name: str, content: str) -> Path:
        # Keep snapshots out of `git add -A`.
        ensure_git_ignored(self.scratch_dir)
        path = self.scratch_dir / f"{prefix}_{patch_id}_{Path(name).name}"
        path.write_bytes(content.encode("utf-8"))
        return path

    async def preview(self, original: str, candidate: str, *, patch_id: str, name: str) -> DiffPreview:
        orig_path = self._snapshot("orig", patch_id, name, original)
        new_path = self._snapshot("new", patch_id, name, candidate)

        res = await self.executor.run(
            "git",
            ["diff", "--no-index", "--", str(orig_path), str(new_path)],
            timeout_s=self.timeout_s,
        )
        if res.timed_out or res.rejected or res.exit_code not in _DIFF_OK_CODES:
            # A failed preview never becomes a pending patch.
            orig_path.unlink(missing_ok=True)
            new_path.unlink(missing_ok=True)
            raise DiffPreviewFailed(
                "Diff preview failed: " + (res.stderr.strip() or f"exit code {res.exit_code}"),
                res,
            )

        return DiffPreview(
            original_path=orig_path,
            candidate_path=new_path,
            diff_text=res.stdout or "(no diff)",
        )
