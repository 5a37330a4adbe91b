from __future__ import annotations

import re
from pathlib import Path, PurePosixPath

from .config import PathsConfig
from .errors import AbsolutePathRejected, ForbiddenPath, OutsideRepository, PathError, PathTraversal

FORBIDDEN_NAMES = frozenset({".env", ".git"})
FORBIDDEN_PREFIXES = (".git", "node_modules", "logs", "workspace", ".opsbridge")

_LEADING_DOT_SLASH = re.compile(r"^(\./)+")
_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:")


def _normalize(rel_path: str) -> str:
    cleaned = str(rel_path or "").strip().replace("\\", "/")
    return _LEADING_DOT_SLASH.sub("", cleaned)


def ensure_git_ignored(directory: Path) -> None:
    """Create `directory` with a `.gitignore` that ignores everything inside it."""
    directory.mkdir(parents=True, exist_ok=True)
    ignore = directory / ".gitignore"
    if not ignore.exists():
        ignore.write_text("*\n", encoding="utf-8")


class PathGuard:
    """Resolves operator- or model-supplied relative paths inside the repository.

    Rejects parent-directory segments, absolute paths, secrets files and their
    variants, version-control internals, the dependency cache, logs and the
    scratch workspace, and anything that resolves (through symlinks) outside the
    repository root.
    """

    def __init__(
        self,
        repo_root: Path,
        forbidden_names: frozenset[str] | set[str] = FORBIDDEN_NAMES,
        forbidden_prefixes: tuple[str, ...] | list[str] = FORBIDDEN_PREFIXES,
    ):
        # Normalize root to avoid false "escape" on platforms where `resolve()`
        # canonicalizes paths (e.g., macOS /var -> /private/var).
        self.repo_root = Path(repo_root).resolve()
        self.forbidden_names = frozenset(forbidden_names)
        self.forbidden_prefixes = tuple(p.strip("/") for p in forbidden_prefixes)

    @classmethod
    def from_config(cls, repo_root: Path, config: PathsConfig) -> PathGuard:
        prefixes = list(config.forbidden_prefixes)
        if config.scratch_dir and config.scratch_dir not in prefixes:
            prefixes.append(config.scratch_dir)
        return cls(repo_root, set(config.forbidden_names), prefixes)

    def _forbidden_reason(self, cleaned: str) -> str | None:
        parts = PurePosixPath(cleaned).parts
        for part in parts:
            for name in self.forbidden_names:
                # `.env` also covers `.env.local`, `.env.production`, ...
                if part == name or part.startswith(name + "."):
                    return f"Forbidden path component: {part}"
        for prefix in self.forbidden_prefixes:
            if cleaned == prefix or cleaned.startswith(prefix + "/"):
                return f"Forbidden path prefix: {prefix}/"
        return None

    def _check(self, rel_path: str) -> str:
        cleaned = _normalize(rel_path)
        if not cleaned:
            raise ForbiddenPath("Empty path")
        if ".." in PurePosixPath(cleaned).parts:
            raise PathTraversal(f"Path traversal refused: {rel_path}")
        if cleaned.startswith("/") or _WINDOWS_DRIVE.match(cleaned):
            raise AbsolutePathRejected(f"Absolute path refused: {rel_path}")
        reason = self._forbidden_reason(cleaned)
        if reason:
            raise ForbiddenPath(reason)
        return cleaned

    def is_forbidden(self, rel_path: str) -> bool:
        try:
            self._check(rel_path)
        except PathError:
            return True
        return False

    def resolve(self, rel_path: str) -> Path:
        cleaned = self._check(rel_path)
        p = (self.repo_root / cleaned).resolve()
        if self.repo_root != p and self.repo_root not in p.parents:
            raise OutsideRepository(f"Outside repo refused: {rel_path}")
        return p

    def is_file(self, rel_path: str) -> bool:
        try:
            return self.resolve(rel_path).is_file()
        except (ValueError, OSError):
            return False

    def read_text(self, rel_path: str, max_bytes: int = 180_000) -> str:
        full = self.resolve(rel_path)
        data = full.read_bytes()
        if len(data) > max_bytes:
            raise ForbiddenPath(f"File too large: {rel_path} ({len(data)} bytes)")
        return data.decode("utf-8")
