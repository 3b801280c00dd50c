"""Tests for chat prompts, history parsing and the chat runner."""

import pytest

from aishell.agents.chat.chat_agent import ChatWorkflowRunner, parse_history
from aishell.agents.chat.prompts import CHAT_SYSTEM_PROMPT, build_chat_prompt
from aishell.contracts.conversations import ChatHistoryEntry
from aishell.contracts.events import agent_event_adapter
from aishell.contracts.proposals import AgentContextAttachment
from aishell.core.exceptions import ModelOutputError

from conftest import ScriptedExecutor, error_result, new_id


def model_returning(text):
    return ScriptedExecutor({"model.generate": lambda envelope: {"text": text}})


class TestChatPrompt:
    """Tests for build_chat_prompt."""

    def test_bare_request(self):
        assert build_chat_prompt("Hi") == "User request: Hi\n\nHistory: none\n\nAttachments: none"

    def test_history_and_attachment(self):
        history = [
            ChatHistoryEntry(role="user", content="What is X?", created_at="2026-01-01T00:00:00Z"),
            ChatHistoryEntry(role="agent", content="X is a thing."),
        ]
        attachment = AgentContextAttachment.model_validate({"kind": "file", "filePath": "src/x.py", "snippet": "x = 1"})

        prompt = build_chat_prompt("And Y?", [attachment], history)

        assert prompt == (
            "User request: And Y?\n\n"
            "History:\n"
            "- user (2026-01-01T00:00:00Z): What is X?\n"
            "- agent: X is a thing.\n\n"
            "Attachments:\n\n"
            "[Attachment 1] file\nFile: src/x.py\nRange: full\nSnippet:\nx = 1"
        )


class TestParseHistory:
    def test_valid_history(self):
        entries = parse_history({"history": [{"role": "system", "content": "Be brief."}]})
        assert [(e.role, e.content) for e in entries] == [("system", "Be brief.")]

    @pytest.mark.parametrize(
        "inputs",
        [
            None,
            {},
            {"history": "not a list"},
            {"history": [{"role": "user", "content": ""}]},
            {"history": [{"role": "user", "content": "ok"}, {"role": "robot", "content": "no"}]},
        ],
    )
    def test_malformed_history_yields_none(self, inputs):
        assert parse_history(inputs) == []


class TestChatWorkflowRunner:
    """Tests for ChatWorkflowRunner.start_run."""

    @pytest.mark.asyncio
    async def test_reply_message(self, run_id, collector):
        conversation_id = new_id()
        executor = model_returning("  **Hello** there.\n")
        runner = ChatWorkflowRunner(executor, on_event=collector)

        await runner.start_run(
            run_id,
            {
                "goal": "Say hello",
                "connectionId": "conn-1",
                "config": {"modelRef": "small"},
                "metadata": {"conversationId": conversation_id},
            },
        )

        assert collector.types == ["status", "message", "status"]
        assert collector.statuses == ["running", "completed"]
        message = collector.events[1]
        assert message.role == "agent"
        assert message.content == "**Hello** there."
        assert message.conversation_id == conversation_id
        assert agent_event_adapter.validate_python(message.to_wire()).type == "message"

        [call] = executor.calls
        assert call.reason == "Chat response generation"
        assert call.input == {
            "prompt": "User request: Say hello\n\nHistory: none\n\nAttachments: none",
            "systemPrompt": CHAT_SYSTEM_PROMPT,
            "connectionId": "conn-1",
            "modelRef": "small",
        }
        assert runner.active_runs() == []

    @pytest.mark.asyncio
    async def test_whitespace_reply_kept(self, run_id, collector):
        runner = ChatWorkflowRunner(model_returning("   "), on_event=collector)
        await runner.start_run(run_id, {"goal": "Say nothing"})
        assert collector.events[1].content == "   "
        assert collector.events[1].conversation_id is None

    @pytest.mark.asyncio
    async def test_history_reaches_prompt(self, run_id, collector):
        executor = model_returning("Sure.")
        runner = ChatWorkflowRunner(executor, on_event=collector)
        await runner.start_run(
            run_id,
            {"goal": "Continue", "inputs": {"history": [{"role": "user", "content": "Earlier question"}]}},
        )
        assert "- user: Earlier question" in executor.calls[0].input["prompt"]

    @pytest.mark.asyncio
    async def test_model_failure(self, run_id, collector):
        executor = ScriptedExecutor({"model.generate": lambda envelope: error_result(envelope, "POLICY_DENIED")})
        runner = ChatWorkflowRunner(executor, on_event=collector)

        with pytest.raises(ModelOutputError, match="POLICY_DENIED"):
            await runner.start_run(run_id, {"goal": "Hi"})

        assert collector.types == ["status", "error", "status"]
        assert collector.statuses == ["running", "failed"]
        assert collector.events[1].message == "POLICY_DENIED"
        assert runner.active_runs() == []
