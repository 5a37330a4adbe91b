"""Boundary models for JSON returned by the generative collaborator.

Anything that does not conform is rejected here, before it reaches the patch
engine.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from .errors import InvalidPatchSpec, MultiFileRejected, NonJsonResponse, UnsupportedOperation
from .types import PatchSpec

SUPPORTED_OPS = ("insert_after", "insert_before", "replace_once", "append")

COMMIT_MESSAGE_MAX = 80
NOTES_MAX = 220
ACTIONS_MAX = 6
DEFAULT_COMMIT_MESSAGE = "feat: apply patch"


class _Op(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    text: str = ""

    @field_validator("text", mode="before")
    @classmethod
    def none_text_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class _MatchingOp(_Op):
    match: str = Field(min_length=1)


class InsertAfter(_MatchingOp):
    op: Literal["insert_after"] = "insert_after"


class InsertBefore(_MatchingOp):
    op: Literal["insert_before"] = "insert_before"


class ReplaceOnce(_MatchingOp):
    op: Literal["replace_once"] = "replace_once"


class Append(_Op):
    op: Literal["append"] = "append"


PatchOperation = Annotated[
    Union[InsertAfter, InsertBefore, ReplaceOnce, Append],
    Field(discriminator="op"),
]


class FileEdit(BaseModel):
    path: str
    ops: list[PatchOperation] = Field(default_factory=list)

    @field_validator("path", mode="before")
    @classmethod
    def strip_path(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class PatchProposal(BaseModel):
    """`{commit_message, notes, files: [{path, ops: [{op, match?, text?}]}]}`"""

    commit_message: str = DEFAULT_COMMIT_MESSAGE
    notes: str = ""
    files: list[FileEdit] = Field(default_factory=list)

    @field_validator("commit_message", mode="before")
    @classmethod
    def clamp_commit_message(cls, v: Any) -> Any:
        if v is None:
            return DEFAULT_COMMIT_MESSAGE
        if not isinstance(v, str):
            return v
        lines = v.strip().splitlines()
        first = lines[0].strip() if lines else ""
        return first[:COMMIT_MESSAGE_MAX] or DEFAULT_COMMIT_MESSAGE

    @field_validator("notes", mode="before")
    @classmethod
    def clamp_notes(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v.strip()[:NOTES_MAX] if isinstance(v, str) else v

    def to_patch_spec(self) -> PatchSpec:
        if len(self.files) != 1:
            raise MultiFileRejected(
                f"Patch must target exactly 1 file (got {len(self.files)})."
            )
        edit = self.files[0]
        if not edit.ops:
            raise InvalidPatchSpec("No ops provided.")
        return PatchSpec(
            path=edit.path,
            operations=tuple(edit.ops),
            commit_message=self.commit_message,
            notes=self.notes,
        )


class Advisory(BaseModel):
    """General advisory reply: `{intent, summary, actions[0..6], next_step}`."""

    intent: str = "general"
    summary: str = "Received."
    actions: list[str] = Field(default_factory=list)
    next_step: str = "Tell me your goal and I will lay out the plan."

    @field_validator("intent", "summary", "next_step", mode="before")
    @classmethod
    def blank_to_default(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return cls.model_fields[info.field_name].default
        return str(v)

    @field_validator("actions", mode="before")
    @classmethod
    def clamp_actions(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        return [str(a) for a in v[:ACTIONS_MAX]]


def extract_json_object(raw: str) -> dict[str, Any] | None:
    """Parse `raw` as a JSON object, falling back to the outermost `{...}` slice."""
    if not raw or not isinstance(raw, str):
        return None

    candidates = [raw]
    start = raw.find("{")
    end = raw.rfind("}")
    if start >= 0 and end > start:
        candidates.append(raw[start : end + 1])

    for candidate in candidates:
        try:
            obj = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            return obj
    return None


def _check_op_kinds(obj: dict[str, Any]) -> None:
    files = obj.get("files")
    if not isinstance(files, list):
        return
    for f in files:
        ops = f.get("ops") if isinstance(f, dict) else None
        if not isinstance(ops, list):
            continue
        for op in ops:
            kind = op.get("op") if isinstance(op, dict) else None
            if kind not in SUPPORTED_OPS:
                raise UnsupportedOperation(f"Unsupported op: {kind}")


def parse_patch_proposal(raw: str) -> PatchProposal:
    obj = extract_json_object(raw)
    if obj is None:
        raise NonJsonResponse("Model returned non-JSON. Raw: " + (raw or "")[:250])

    _check_op_kinds(obj)
    try:
        return PatchProposal.model_validate(obj)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()))
        raise InvalidPatchSpec(
            f"Malformed patch proposal at {where or '<root>'}: {first.get('msg', exc)}"
        ) from exc


def parse_advisory(raw: str) -> Advisory | None:
    obj = extract_json_object(raw)
    if obj is None:
        return None
    try:
        return Advisory.model_validate(obj)
    except ValidationError:
        return None
