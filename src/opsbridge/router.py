"""Operator command dispatch.

The chat transport hands every inbound message to `CommandRouter.handle` and
sends back the returned string. Messages are processed one at a time.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from .assistant import Assistant
from .config import OperatorConfig, RunConfig
from .errors import GitError, StageFailed
from .executor import ProcessExecutor
from .git_ops import GitOps
from .lifecycle import PatchLifecycle
from .report import GREETING_TEXT, HELP_TEXT, clamp, format_advisory, format_execution, truncate_reply
from .telemetry import NULL_SINK, TelemetrySink
from .types import PatchSession


class CommandRouter:
    def __init__(
        self,
        *,
        operator: OperatorConfig,
        run_policy: RunConfig,
        lifecycle: PatchLifecycle,
        git_ops: GitOps,
        executor: ProcessExecutor,
        assistant: Assistant,
        telemetry: TelemetrySink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.operator = operator
        self.run_policy = run_policy
        self.lifecycle = lifecycle
        self.git_ops = git_ops
        self.executor = executor
        self.assistant = assistant
        self.telemetry = telemetry or NULL_SINK
        self.clock = clock
        self.sessions: dict[int | str, PatchSession] = {}
        self._last_message_at: dict[int | str, float] = {}

    def session_for(self, chat_id: int | str) -> PatchSession:
        if chat_id not in self.sessions:
            self.sessions[chat_id] = PatchSession(operator_id=chat_id)
        return self.sessions[chat_id]

    def is_operator(self, chat_id: int | str) -> bool:
        return self.operator.chat_id is not None and str(chat_id) == str(self.operator.chat_id)

    async def handle(self, chat_id: int | str, text: str) -> str:
        """Dispatch one operator message and return the reply text."""
        text = (text or "").strip()
        if not text:
            return ""
        if not self.is_operator(chat_id):
            self.telemetry.log(str(chat_id), "operator_denied", {})
            return "Access denied."

        try:
            reply = await self._dispatch(chat_id, text)
        except Exception as e:  # noqa: BLE001
            # Last resort: an operator command must never take the agent down.
            reply = f"Internal error: {type(e).__name__}: {e}"
        return truncate_reply(reply, self.operator.reply_limit)

    async def _dispatch(self, chat_id: int | str, text: str) -> str:
        if not text.startswith("/"):
            return await self._free_text(chat_id, text)
        if text == "/git" or text.startswith("/git "):
            return await self._git(text[len("/git"):].strip())
        if text == "/patch" or text.startswith("/patch "):
            return await self._patch(chat_id, text[len("/patch"):].strip())
        if text.startswith("/run "):
            return await self._run(text[len("/run "):].strip())
        return HELP_TEXT

    async def _free_text(self, chat_id: int | str, text: str) -> str:
        now = self.clock()
        last = self._last_message_at.get(chat_id)
        if last is not None and now - last < self.operator.rate_limit_seconds:
            return f"Wait {self.operator.rate_limit_seconds:g} seconds."
        self._last_message_at[chat_id] = now

        if text.lower() in self.operator.greetings or len(text) < 5:
            return GREETING_TEXT
        return format_advisory(await self.assistant.advise(text))

    async def _git(self, rest: str) -> str:
        if rest == "status":
            r = await self.git_ops.status()
            return f"/git status\n\n{(r.stdout or r.stderr or '-').strip()}"
        if rest == "diff":
            r = await self.git_ops.diff_stat()
            return f"/git diff (stat)\n\n{(r.stdout or r.stderr or '-').strip()}"
        if rest == "diff full":
            r = await self.git_ops.diff_full()
            return f"/git diff (full)\n\n{clamp((r.stdout or r.stderr or '-').strip(), 3500)}"
        if rest == "commit" or rest.startswith("commit "):
            message = rest[len("commit"):].strip()
            if not message:
                return "Missing message. Example: /git commit fix: update bot"
            try:
                res = await self.git_ops.commit(message)
            except GitError as e:
                step = "git add -A" if isinstance(e, StageFailed) else "git commit"
                detail = e.result.stderr.strip() if e.result else ""
                return f"Commit failed ({step})\n\n{detail or e}"
            return f"Commit OK\n\n{(res.commit.stdout or '-').strip()}"
        return HELP_TEXT

    async def _patch(self, chat_id: int | str, rest: str) -> str:
        session = self.session_for(chat_id)
        if rest == "cancel":
            outcome = await self.lifecycle.cancel(session)
        elif rest == "test":
            outcome = await self.lifecycle.test(session)
        elif rest == "apply":
            outcome = await self.lifecycle.apply(session)
        else:
            outcome = await self.lifecycle.propose(session, rest)
        return outcome.message

    def _run_blocked(self, cmd: str, args: list[str]) -> bool:
        if not cmd or cmd in self.run_policy.blocked_commands:
            return True
        joined = " ".join([cmd, *args])
        return any(s in joined for s in self.run_policy.blocked_substrings)

    async def _run(self, rest: str) -> str:
        parts = rest.split()
        if not parts:
            return "Usage: /run <cmd> ..."
        cmd, args = parts[0], parts[1:]
        if self._run_blocked(cmd, args):
            return "Command refused."
        return format_execution(await self.executor.run(cmd, args))
