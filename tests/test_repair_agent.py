"""
Tests for the tool-calling repair loop.

The model is a FakeAnthropic returning scripted turns; tool calls run against a
FakeSandbox so file writes and build commands are observable.
"""

import pytest
import sys
from pathlib import Path

import anthropic
import httpx

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from app.agent import RepairAgent, RepairSession
from app.config import COMPONENT_PATH, get_settings
from app.llm import ImagePayload, ModelClient
from conftest import FakeAnthropic, model_response, text_block, tool_use

BROKEN = "export default function Component() { return (<div> }"
FIXED = "export default function Component() { return (<div />); }"
IMAGE = ImagePayload(media_type="image/png", data="iVBORw0KGgo=")


def make_agent(*responses):
    client = FakeAnthropic(*responses)
    events = []
    agent = RepairAgent(ModelClient(client=client), on_event=lambda e, d: events.append((e, d)))
    return agent, client, events


def logs(events):
    return [d["message"] for e, d in events if e == "log"]


class TestRepairSession:

    def test_succeeded_requires_task_complete_and_success(self):
        assert RepairSession("x", task_complete=True, success=True).succeeded
        assert not RepairSession("x", task_complete=True, success=False).succeeded
        assert not RepairSession("x", task_complete=False, success=None).succeeded

    def test_exhausted(self):
        assert RepairSession("x", iteration=21, max_iterations=21).exhausted
        assert not RepairSession("x", iteration=20, max_iterations=21).exhausted


class TestCeiling:

    def test_default_ceiling(self):
        agent, _, _ = make_agent(model_response(text_block("hi")))
        assert agent.ceiling(1) == 21
        assert agent.ceiling(0) == 20

    def test_global_cap_wins(self, monkeypatch):
        monkeypatch.setenv("MAX_ITERATIONS", "5")
        get_settings.cache_clear()
        agent, _, _ = make_agent(model_response(text_block("hi")))
        assert agent.ceiling(1) == 5


class TestRepairLoop:

    @pytest.mark.asyncio
    async def test_fix_then_complete(self, handle, fake_sandbox_cls):
        fake_sandbox_cls.script("npm run build", (0, "Compiled successfully"))
        agent, client, events = make_agent(
            model_response(
                tool_use("write_file", "t1", path=COMPONENT_PATH, content=FIXED),
                tool_use("run_command", "t2", command="npm run build"),
            ),
            model_response(tool_use("task_complete", "t3", success=True, message="Fixed JSX")),
        )

        session = await agent.repair(handle, BROKEN, "Unexpected token", image=IMAGE)

        assert session.succeeded
        assert session.current_code == FIXED
        assert session.iteration == 3
        assert session.completion_message == "Fixed JSX"
        assert handle.sandbox.files.store[COMPONENT_PATH] == FIXED
        assert ("code", {"code": FIXED}) in events
        assert [d for e, d in events if e == "iteration"] == [
            {"current": 2, "max": 21},
            {"current": 3, "max": 21},
        ]
        assert "✅ Build successful!" in logs(events)
        assert len(client.messages.calls) == 2

    @pytest.mark.asyncio
    async def test_latest_component_write_wins(self, handle):
        agent, _, events = make_agent(
            model_response(
                tool_use("write_file", "t1", path=COMPONENT_PATH, content="draft one"),
                tool_use("write_file", "t2", path="/home/user/app/lib/data.ts", content="other"),
                tool_use("write_file", "t3", path="app/component.tsx", content="draft two"),
            ),
            model_response(tool_use("task_complete", "t4", success=True, message="ok")),
        )

        session = await agent.repair(handle, BROKEN, "err")

        codes = [d["code"] for e, d in events if e == "code"]
        assert codes == ["draft one", "draft two"]
        assert session.current_code == "draft two"

    @pytest.mark.asyncio
    async def test_first_turn_carries_prompt_and_image(self, handle):
        agent, client, _ = make_agent(
            model_response(tool_use("task_complete", success=True, message="ok")),
        )

        await agent.repair(handle, BROKEN, "Unexpected token", image=IMAGE)

        call = client.messages.calls[0]
        assert call["temperature"] == 0.3
        assert BROKEN in call["system"]
        assert "Unexpected token" in call["system"]
        assert [t["name"] for t in call["tools"]] == [
            "read_file", "write_file", "run_command", "list_files", "task_complete",
        ]
        content = call["messages"][0]["content"]
        assert content[0]["type"] == "text"
        assert content[1]["type"] == "image"

    @pytest.mark.asyncio
    async def test_tool_results_sent_back_next_turn(self, handle):
        agent, client, _ = make_agent(
            model_response(tool_use("list_files", "t1", path="/home/user/app")),
            model_response(tool_use("task_complete", "t2", success=True, message="ok")),
        )

        await agent.repair(handle, BROKEN, "err", image=IMAGE)

        second = client.messages.calls[1]["messages"]
        assert [m["role"] for m in second] == ["user", "assistant", "user"]
        result, nudge = second[2]["content"]
        assert result["type"] == "tool_result"
        assert result["tool_use_id"] == "t1"
        assert result["is_error"] is False
        assert nudge["type"] == "text"
        assert all(block["type"] != "image" for block in second[2]["content"])

    @pytest.mark.asyncio
    async def test_ceiling_stops_loop(self, handle, monkeypatch):
        monkeypatch.setenv("MAX_REPAIR_ITERATIONS", "3")
        get_settings.cache_clear()
        agent, client, events = make_agent(
            model_response(tool_use("run_command", command="npm run build")),
        )

        session = await agent.repair(handle, BROKEN, "err")

        assert len(client.messages.calls) == 3
        assert session.iteration == 4
        assert not session.task_complete
        assert not session.succeeded
        assert session.current_code == BROKEN
        assert "⚠️ Max iterations reached" in logs(events)

    @pytest.mark.asyncio
    async def test_text_only_turn_continues(self, handle):
        agent, client, events = make_agent(
            model_response(text_block("Let me think about this.")),
            model_response(tool_use("task_complete", success=True, message="ok")),
        )

        session = await agent.repair(handle, BROKEN, "err")

        assert session.succeeded
        assert len(client.messages.calls) == 2
        assert any(m.startswith("💬 Let me think") for m in logs(events))

    @pytest.mark.asyncio
    async def test_task_complete_false_gives_up(self, handle):
        agent, _, events = make_agent(
            model_response(tool_use("task_complete", success=False, message="Cannot resolve import")),
        )

        session = await agent.repair(handle, BROKEN, "err")

        assert session.task_complete
        assert session.success is False
        assert not session.succeeded
        assert ("log", {"message": "⚠️ Cannot resolve import", "level": "warning"}) in events

    @pytest.mark.asyncio
    async def test_model_failure_ends_loop_without_raising(self, handle):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        agent, _, events = make_agent(anthropic.APIConnectionError(request=request))

        session = await agent.repair(handle, BROKEN, "err")

        assert not session.succeeded
        assert session.current_code == BROKEN
        assert any(m.startswith("❌ Model request failed") for m in logs(events))
        assert "⚠️ Agent stopped before completing the task" in logs(events)


class TestToolErrors:
    """Tool failures are reported to the model, never raised."""

    @pytest.mark.asyncio
    async def test_errors_flagged_in_tool_results(self, handle):
        agent, client, _ = make_agent(
            model_response(
                tool_use("read_file", "t1", path="/home/user/app/missing.tsx"),
                tool_use("delete_everything", "t2"),
                tool_use("run_command", "t3", command="rm -rf /"),
                tool_use("read_file", "t4", path="/home/user/app/.env"),
            ),
            model_response(tool_use("task_complete", "t5", success=True, message="ok")),
        )

        session = await agent.repair(handle, BROKEN, "err")

        results = client.messages.calls[1]["messages"][2]["content"][:4]
        assert all(r["is_error"] for r in results)
        assert results[1]["content"] == "Error: Unknown tool: delete_everything"
        assert results[2]["content"] == "Error: Dangerous command blocked: rm -rf /"
        assert results[3]["content"].startswith("Error: Access to sensitive file denied")
        assert session.succeeded
        assert handle.sandbox.commands.commands_matching("rm -rf") == []


class TestEdit:

    @pytest.mark.asyncio
    async def test_edit_counts_from_zero(self, handle, fake_sandbox_cls):
        fake_sandbox_cls.script("npm run build", (0, "ok"))
        agent, client, events = make_agent(
            model_response(
                tool_use("write_file", "t1", path=COMPONENT_PATH, content=FIXED),
                tool_use("run_command", "t2", command="npm run build"),
                tool_use("task_complete", "t3", success=True, message="Made it blue"),
            ),
        )

        session = await agent.edit(handle, BROKEN, "Make the header blue")

        assert session.succeeded
        assert session.iteration == 1
        assert session.current_code == FIXED
        assert [d for e, d in events if e == "iteration"] == [{"current": 1, "max": 20}]
        assert "USER REQUEST: Make the header blue" in client.messages.calls[0]["system"]
