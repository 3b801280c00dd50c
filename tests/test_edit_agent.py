"""Tests for edit prompts, proposal parsing and the edit runner."""

import json

import pytest

from aishell.agents.edit.edit_agent import EditWorkflowRunner
from aishell.agents.edit.prompts import EDIT_SYSTEM_PROMPT, build_edit_prompt
from aishell.agents.edit.proposal import parse_edit_proposal_output
from aishell.contracts.proposals import AgentContextAttachment, AgentEditRequestOptions
from aishell.core.exceptions import EditProposalError, ModelOutputError

from conftest import ScriptedExecutor, error_result, new_id

TWO_FILE_PATCH = """diff --git a/src/a.py b/src/a.py
--- a/src/a.py
+++ b/src/a.py
@@ -1 +1 @@
-a = 1
+a = 2
diff --git a/src/b.py b/src/b.py
--- a/src/b.py
+++ b/src/b.py
@@ -1 +1 @@
-b = 1
+b = 2"""


class TestEditPrompt:
    """Tests for build_edit_prompt."""

    def test_without_attachments_or_options(self):
        prompt = build_edit_prompt("Rename a")
        assert prompt == "User request: Rename a\n\nOptions: none\n\nAttachments: none"

    def test_options_and_attachment(self):
        attachment = AgentContextAttachment.model_validate(
            {
                "kind": "selection",
                "filePath": "src/a.py",
                "range": {"startLineNumber": 1, "startColumn": 1, "endLineNumber": 2, "endColumn": 5},
                "snippet": "a = 1",
            }
        )
        options = AgentEditRequestOptions(allow_writes=False, max_patch_bytes=2048)

        prompt = build_edit_prompt("Rename a", [attachment], options)

        assert "- allowWrites: false\n- maxPatchBytes: 2048" in prompt
        assert "[Attachment 1] selection\nFile: src/a.py\nRange: 1:1-2:5\nSnippet:\na = 1" in prompt

    def test_snippet_budgets(self):
        """Snippets are clipped per attachment and omitted once the total budget is spent."""
        attachments = [
            AgentContextAttachment.model_validate({"kind": "file", "filePath": f"f{i}.py", "snippet": "x" * 5000})
            for i in range(4)
        ]
        prompt = build_edit_prompt("Refactor", attachments)
        assert prompt.count("[truncated]") == 3
        assert prompt.count("Snippet: (omitted due to size limit)") == 1

    def test_missing_snippet(self):
        attachment = AgentContextAttachment.model_validate({"kind": "file", "filePath": "a.py"})
        assert "Range: full\nSnippet: (not provided)" in build_edit_prompt("x", [attachment])


class TestParseEditProposal:
    """Tests for parse_edit_proposal_output."""

    def test_patch_counts_diff_headers(self):
        proposal = parse_edit_proposal_output(TWO_FILE_PATCH)
        assert proposal.proposal.summary.files_changed == 2
        assert proposal.proposal.patch == TWO_FILE_PATCH
        assert proposal.summary == "Edit proposal (2 files)."

    def test_patch_counts_plus_headers_without_git(self):
        patch = "--- a/x\n+++ b/x\n@@ -1 +1 @@\n-1\n+2"
        assert parse_edit_proposal_output(patch).proposal.summary.files_changed == 1

    def test_fenced_json(self):
        body = {
            "summary": "Bump constant",
            "proposal": {
                "writes": [{"path": "src/a.py", "content": "a = 2\n"}, {"path": "", "content": "dropped"}],
                "summary": {"filesChanged": 1, "additions": 1, "deletions": 1},
            },
        }
        text = "```json\n" + json.dumps(body) + "\n```"

        proposal = parse_edit_proposal_output(text)

        assert proposal.summary == "Bump constant"
        assert [w.path for w in proposal.proposal.writes] == ["src/a.py"]
        assert proposal.proposal.summary.additions == 1

    def test_json_without_wrapper_and_default_summary(self):
        text = json.dumps({"writes": [{"path": "a", "content": "1"}, {"path": "b", "content": "2"}]})
        proposal = parse_edit_proposal_output(text)
        assert proposal.proposal.summary.files_changed == 2
        assert proposal.summary == "Edit proposal (2 files)."

    def test_json_without_writes_or_patch(self):
        with pytest.raises(EditProposalError, match="did not include any writes or patch"):
            parse_edit_proposal_output(json.dumps({"summary": "nothing", "proposal": {"writes": []}}))

    def test_writes_rejected_when_not_allowed(self):
        text = json.dumps({"proposal": {"writes": [{"path": "a", "content": "1"}]}})
        with pytest.raises(EditProposalError, match="allowWrites is false"):
            parse_edit_proposal_output(text, AgentEditRequestOptions(allow_writes=False))

    def test_patch_size_limit_in_bytes(self):
        patch = "--- a/x\n+++ b/x\n+é"
        size = len(patch.encode("utf-8"))
        with pytest.raises(EditProposalError, match=rf"Patch exceeds maxPatchBytes \({size} > {size - 1}\)\."):
            parse_edit_proposal_output(patch, AgentEditRequestOptions(max_patch_bytes=size - 1))
        assert parse_edit_proposal_output(patch, AgentEditRequestOptions(max_patch_bytes=size)).proposal.patch

    def test_empty_output(self):
        with pytest.raises(ModelOutputError, match="model.generate returned empty output"):
            parse_edit_proposal_output("```\n\n```")


def model_returning(text):
    return ScriptedExecutor({"model.generate": lambda envelope: {"text": text}})


class TestEditWorkflowRunner:
    """Tests for EditWorkflowRunner.start_run."""

    @pytest.mark.asyncio
    async def test_patch_proposal(self, run_id, collector):
        executor = model_returning(TWO_FILE_PATCH)
        runner = EditWorkflowRunner(executor, on_event=collector)

        await runner.start_run(run_id, {"goal": "Bump constants", "connectionId": "conn-1"})

        assert collector.types == ["status", "edit-proposal", "status"]
        assert collector.statuses == ["running", "completed"]
        event = collector.events[1]
        assert event.proposal.proposal.summary.files_changed == 2
        assert event.conversation_id is None

        [call] = executor.calls
        assert call.reason == "Edit proposal generation"
        assert call.input["systemPrompt"] == EDIT_SYSTEM_PROMPT
        assert call.input["connectionId"] == "conn-1"
        assert call.input["prompt"].startswith("User request: Bump constants")

    @pytest.mark.asyncio
    async def test_writes_not_allowed(self, run_id, collector):
        """allowWrites false plus a proposal with writes fails the run."""
        executor = model_returning(json.dumps({"proposal": {"writes": [{"path": "a.py", "content": "x"}]}}))
        runner = EditWorkflowRunner(executor, on_event=collector)

        with pytest.raises(EditProposalError, match="allowWrites is false"):
            await runner.start_run(run_id, {"goal": "Edit", "inputs": {"options": {"allowWrites": False}}})

        assert collector.statuses == ["running", "failed"]
        assert collector.types == ["status", "error", "status"]
        assert "allowWrites is false" in collector.events[1].message

    @pytest.mark.asyncio
    async def test_conversation_id_prefers_metadata(self, run_id, collector):
        from_metadata, from_inputs = new_id(), new_id()
        runner = EditWorkflowRunner(model_returning(TWO_FILE_PATCH), on_event=collector)

        await runner.start_run(
            run_id,
            {
                "goal": "Edit",
                "metadata": {"conversationId": from_metadata},
                "inputs": {"conversationId": from_inputs},
            },
        )

        assert collector.events[1].conversation_id == from_metadata

    @pytest.mark.asyncio
    async def test_conversation_id_from_inputs_when_metadata_invalid(self, run_id, collector):
        from_inputs = new_id()
        runner = EditWorkflowRunner(model_returning(TWO_FILE_PATCH), on_event=collector)
        await runner.start_run(
            run_id,
            {"goal": "Edit", "metadata": {"conversationId": "nope"}, "inputs": {"conversationId": from_inputs}},
        )
        assert collector.events[1].conversation_id == from_inputs

    @pytest.mark.asyncio
    async def test_malformed_attachments_ignored(self, run_id, collector):
        executor = model_returning(TWO_FILE_PATCH)
        runner = EditWorkflowRunner(executor, on_event=collector)
        await runner.start_run(run_id, {"goal": "Edit", "inputs": {"attachments": [{"kind": 1}]}})
        assert "Attachments: none" in executor.calls[0].input["prompt"]

    @pytest.mark.asyncio
    async def test_model_failure(self, run_id, collector):
        executor = ScriptedExecutor({"model.generate": lambda envelope: error_result(envelope, "POLICY_DENIED")})
        runner = EditWorkflowRunner(executor, on_event=collector)

        with pytest.raises(ModelOutputError, match="POLICY_DENIED"):
            await runner.start_run(run_id, {"goal": "Edit"})
        assert collector.statuses == ["running", "failed"]

    @pytest.mark.asyncio
    async def test_model_invalid_output(self, run_id, collector):
        runner = EditWorkflowRunner(ScriptedExecutor({"model.generate": lambda envelope: {"txt": 1}}), on_event=collector)
        with pytest.raises(ModelOutputError, match="model.generate returned invalid output"):
            await runner.start_run(run_id, {"goal": "Edit"})
