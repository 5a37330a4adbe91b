"""Literal-substring patch operations.

Operations run strictly in order: each one is matched against the output of
the previous one, never against the original content. Any failure aborts the
whole batch; callers only ever see the fully patched string or an exception.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from functools import reduce
from typing import Any

from .errors import InvalidPatchSpec, NoMatchFound, ShrinkGuardTripped, UnsupportedOperation

DEFAULT_MIN_LINE_RATIO = 0.7


def _locate(content: str, kind: str, match: str | None) -> int:
    if not match:
        raise InvalidPatchSpec(f"{kind} requires match")
    idx = content.find(match)
    if idx < 0:
        raise NoMatchFound(f"match not found for {kind}: {match[:80]!r}")
    return idx


def _insert_after(content: str, match: str | None, text: str) -> str:
    pos = _locate(content, "insert_after", match) + len(match or "")
    return content[:pos] + text + content[pos:]


def _insert_before(content: str, match: str | None, text: str) -> str:
    idx = _locate(content, "insert_before", match)
    return content[:idx] + text + content[idx:]


def _replace_once(content: str, match: str | None, text: str) -> str:
    idx = _locate(content, "replace_once", match)
    return content[:idx] + text + content[idx + len(match or "") :]


def _append(content: str, _match: str | None, text: str) -> str:
    if not content.endswith("\n"):
        content += "\n"
    return content + text


_HANDLERS: dict[str, Callable[[str, str | None, str], str]] = {
    "insert_after": _insert_after,
    "insert_before": _insert_before,
    "replace_once": _replace_once,
    "append": _append,
}


def apply_operation(content: str, operation: Any) -> str:
    """Apply one operation (anything with `op`, `text` and optionally `match`)."""
    kind = str(getattr(operation, "op", "") or "").strip()
    handler = _HANDLERS.get(kind)
    if handler is None:
        raise UnsupportedOperation(f"Unsupported op: {kind or '<missing>'}")
    match = getattr(operation, "match", None)
    text = getattr(operation, "text", None) or ""
    return handler(content, match, text)


def apply_operations(content: str, operations: Iterable[Any]) -> str:
    return reduce(apply_operation, operations, content)


def count_lines(content: str) -> int:
    return len(content.split("\n"))


def check_shrink(original: str, candidate: str, min_ratio: float = DEFAULT_MIN_LINE_RATIO) -> None:
    """Refuse candidates with fewer than `min_ratio` of the original line count."""
    orig_lines = count_lines(original)
    new_lines = count_lines(candidate)
    if orig_lines > 0 and new_lines < orig_lines * min_ratio:
        raise ShrinkGuardTripped(orig_lines, new_lines)
