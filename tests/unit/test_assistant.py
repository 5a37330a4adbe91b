"""Unit tests for assistant.py - prompts and reply parsing."""

from __future__ import annotations

import json

import pytest
from conftest import FakeModel, proposal

from opsbridge.assistant import Assistant
from opsbridge.errors import GenerationFailed, MultiFileRejected, UnsupportedOperation


@pytest.mark.asyncio
class TestProposePatch:
    async def test_returns_patch_spec(self):
        assistant = Assistant(FakeModel(proposal()))
        spec = await assistant.propose_patch("add route", ["index.js"], {"index.js": "x"})
        assert spec.path == "index.js"
        assert spec.commit_message == "feat: add version route"
        assert spec.operations[0].op == "insert_after"

    async def test_system_prompt_forbids_diffs_and_lists_ops(self):
        model = FakeModel(proposal())
        await Assistant(model).propose_patch("add route", ["index.js", "telegram_bridge.js"], {})
        system = model.calls[0][0]["content"]
        assert "MUST NOT output a diff" in system
        assert "insert_after | insert_before | replace_once | append" in system
        assert "index.js, telegram_bridge.js" in system

    async def test_user_prompt_includes_file_contents(self):
        model = FakeModel(proposal())
        await Assistant(model).propose_patch("add route", ["index.js"], {"index.js": "const a = 1;"})
        user = model.calls[0][1]["content"]
        assert user.startswith("INSTRUCTION:\nadd route")
        assert "FILE: index.js\n-----\nconst a = 1;\n-----" in user

    async def test_unknown_op_propagates(self):
        model = FakeModel(proposal(ops=[{"op": "rewrite_file", "text": ""}]))
        with pytest.raises(UnsupportedOperation):
            await Assistant(model).propose_patch("x", ["index.js"], {})

    async def test_multi_file_propagates(self):
        raw = json.dumps(
            {
                "files": [
                    {"path": "index.js", "ops": [{"op": "append", "text": "a"}]},
                    {"path": "telegram_bridge.js", "ops": [{"op": "append", "text": "b"}]},
                ]
            }
        )
        with pytest.raises(MultiFileRejected):
            await Assistant(FakeModel(raw)).propose_patch("x", ["index.js"], {})

    async def test_generation_failure_propagates(self):
        with pytest.raises(GenerationFailed):
            await Assistant(FakeModel(GenerationFailed("down"))).propose_patch("x", ["index.js"], {})


@pytest.mark.asyncio
class TestAdvise:
    async def test_structured_reply(self):
        reply = json.dumps(
            {"intent": "infra", "summary": "Restart loop.", "actions": ["Check logs"], "next_step": "pm2 logs"}
        )
        advisory = await Assistant(FakeModel(reply)).advise("why does it crash?")
        assert advisory.intent == "infra"
        assert advisory.summary == "Restart loop."
        assert advisory.actions == ["Check logs"]

    async def test_non_json_reply_falls_back(self):
        advisory = await Assistant(FakeModel("It crashes because...")).advise("why?")
        assert advisory.summary == "Model reply was not valid JSON."
        assert advisory.actions

    async def test_model_failure_falls_back(self):
        advisory = await Assistant(FakeModel(GenerationFailed("HTTP 401"))).advise("why?")
        assert "Model error" in advisory.summary
        assert "HTTP 401" in advisory.summary
        assert len(advisory.actions) <= 6
