"""Error taxonomy for OpsBridge.

Every failure raised inside the patch engine derives from OpsBridgeError so the
lifecycle and the command router can turn it into an operator message with a
single except clause.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import ExecutionResult


class OpsBridgeError(RuntimeError):
    """Base class for all OpsBridge failures."""


class ExecutionError(OpsBridgeError):
    """A spawned command did not succeed."""

    def __init__(self, message: str, result: ExecutionResult | None = None):
        super().__init__(message)
        self.result = result


class ExecutionDenied(ExecutionError):
    pass


class ExecutionTimeout(ExecutionError):
    pass


class ExecutionFailed(ExecutionError):
    pass


class PathError(OpsBridgeError, ValueError):
    """A relative path could not be resolved safely."""


class PathTraversal(PathError):
    pass


class AbsolutePathRejected(PathError):
    pass


class ForbiddenPath(PathError):
    pass


class OutsideRepository(PathError):
    pass


class PatchError(OpsBridgeError):
    """A patch proposal could not be turned into candidate content."""


class NoMatchFound(PatchError):
    pass


class UnsupportedOperation(PatchError):
    pass


class InvalidPatchSpec(PatchError):
    pass


class ShrinkGuardTripped(PatchError):
    def __init__(self, original_lines: int, candidate_lines: int):
        super().__init__(
            f"Refused: file shrinks too much (orig={original_lines}, new={candidate_lines})"
        )
        self.original_lines = original_lines
        self.candidate_lines = candidate_lines


class NonJsonResponse(PatchError):
    pass


class MultiFileRejected(PatchError):
    pass


class FileNotAllowlisted(PatchError):
    pass


class DiffPreviewFailed(PatchError):
    def __init__(self, message: str, result: ExecutionResult | None = None):
        super().__init__(message)
        self.result = result


class GitError(ExecutionError):
    pass


class StageFailed(GitError):
    pass


class CommitFailed(GitError):
    pass


class NoPendingPatch(OpsBridgeError):
    pass


class GenerationFailed(OpsBridgeError):
    """The generative collaborator could not be reached or refused the request."""


class GenerationCancelled(GenerationFailed):
    pass
