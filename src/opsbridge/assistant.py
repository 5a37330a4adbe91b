"""Adapter around the generative collaborator.

Turns an operator instruction into a validated PatchSpec, or free text into an
advisory reply.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from typing import Protocol

from .errors import GenerationFailed
from .schema import SUPPORTED_OPS, Advisory, parse_advisory, parse_patch_proposal
from .types import PatchSpec


class ChatModel(Protocol):
    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str: ...


PATCH_SYSTEM_PROMPT = """Return ONLY valid JSON. No markdown. No extra text.
You are a coding agent. You MUST NOT output a diff.
You must output JSON instructions for minimal edits.

STRICT RULES:
1) Only modify these files: {allowed_files}
2) Use ops: {ops}
3) match must be an exact substring present in the file content
4) Keep changes minimal; do NOT delete/replace large chunks
5) Exactly one entry in "files"

JSON schema:
{{
  "commit_message": "<= 80 chars",
  "notes": "short",
  "files": [
    {{ "path": "{example_path}", "ops": [
        {{"op":"insert_after","match":"...","text":"..."}}
    ] }}
  ]
}}"""

ADVISORY_SYSTEM_PROMPT = """You are the operator's technical advisor for a running service.
Be direct, no fluff. Structure the answer and make a call.

IMPORTANT: answer ONLY with valid JSON. No markdown. No text outside the JSON.
Strict schema:
{ "intent":"infra|construction|finance|legal|general", "summary":"string", "actions":["string"], "next_step":"string" }

Rules:
- summary: 1-2 sentences.
- actions: 0 to 6 concrete steps, measurable where possible.
- next_step: one immediate, short action."""


def _messages(system: str, user: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


class Assistant:
    def __init__(self, model: ChatModel):
        self.model = model

    def build_patch_prompt(
        self,
        instruction: str,
        allowed_files: Sequence[str],
        context_files: Mapping[str, str],
    ) -> list[dict[str, str]]:
        system = PATCH_SYSTEM_PROMPT.format(
            allowed_files=", ".join(allowed_files),
            ops=" | ".join(SUPPORTED_OPS),
            example_path=allowed_files[0] if allowed_files else "index.js",
        )
        context = "".join(
            f"FILE: {path}\n-----\n{content}\n-----\n" for path, content in context_files.items()
        )
        user = "\n".join(["INSTRUCTION:", instruction, "", "CURRENT FILE CONTENTS:", context])
        return _messages(system, user)

    async def propose_patch(
        self,
        instruction: str,
        allowed_files: Sequence[str],
        context_files: Mapping[str, str],
        cancel_event: asyncio.Event | None = None,
    ) -> PatchSpec:
        """Ask the model for a single-file patch.

        Raises NonJsonResponse, UnsupportedOperation, MultiFileRejected or
        InvalidPatchSpec for non-conforming replies, GenerationFailed when the
        model cannot be reached.
        """
        messages = self.build_patch_prompt(instruction, allowed_files, context_files)
        raw = await self.model.chat_completion(messages, cancel_event=cancel_event)
        return parse_patch_proposal(raw).to_patch_spec()

    async def advise(self, text: str, cancel_event: asyncio.Event | None = None) -> Advisory:
        """Answer free text with an advisory object. Never raises."""
        user = f"Message:\n{text.strip()}"
        try:
            raw = await self.model.chat_completion(
                _messages(ADVISORY_SYSTEM_PROMPT, user), cancel_event=cancel_event
            )
        except GenerationFailed as e:
            return Advisory(
                summary=f"Model error ({e}).",
                actions=[
                    "Check the API key is set and valid.",
                    "Check the configured model id.",
                    "Check quota and billing.",
                    "Read the service logs for details.",
                ],
                next_step="Open the logs and look for the model error line.",
            )

        advisory = parse_advisory(raw)
        if advisory is None:
            return Advisory(
                summary="Model reply was not valid JSON.",
                actions=["Tighten the prompt or force strict JSON output on the model side."],
                next_step="Retry with a more precise question (context + constraint).",
            )
        return advisory
