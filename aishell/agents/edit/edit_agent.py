"""Edit workflow runner: one model call, one parsed edit proposal."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import ValidationError

from aishell.agents.attachments import parse_attachments, resolve_conversation_id
from aishell.agents.base import RunState, WorkflowRunner, error_code, error_message
from aishell.agents.edit.prompts import EDIT_SYSTEM_PROMPT, build_edit_prompt
from aishell.agents.edit.proposal import parse_edit_proposal_output
from aishell.contracts.events import EditProposalEvent, ErrorEvent, StatusEvent
from aishell.contracts.proposals import AgentEditRequestOptions
from aishell.contracts.runs import AgentRunStartRequest
from aishell.contracts.validate import parse_contract
from aishell.core.logging import bind_run_context, get_logger

logger = get_logger(__name__)


def parse_options(inputs: Optional[dict[str, Any]]) -> Optional[AgentEditRequestOptions]:
    if not inputs or inputs.get("options") is None:
        return None
    try:
        return AgentEditRequestOptions.model_validate(inputs["options"])
    except ValidationError:
        logger.debug("Ignoring malformed edit options")
        return None


class EditWorkflowRunner(WorkflowRunner):
    workflow = "edit"

    async def start_run(self, run_id: str, request: AgentRunStartRequest | dict) -> None:
        validated = parse_contract(AgentRunStartRequest, request)
        inputs = validated.inputs
        options = parse_options(inputs)
        prompt = build_edit_prompt(validated.goal, parse_attachments(inputs), options)

        with bind_run_context(run_id, self.workflow):
            self._runs[run_id] = RunState(run_id=run_id)
            self._emit(StatusEvent, run_id, status="running")
            try:
                model_input = self._model_input(
                    prompt,
                    system_prompt=EDIT_SYSTEM_PROMPT,
                    connection_id=validated.connection_id,
                    config=validated.config,
                )
                text = await self._generate_text(run_id, model_input, "Edit proposal generation")
                proposal = parse_edit_proposal_output(text, options)
                conversation_id = resolve_conversation_id(validated, inputs)

                self._emit(EditProposalEvent, run_id, proposal=proposal, conversation_id=conversation_id)
                self._emit(StatusEvent, run_id, status="completed")
                logger.info(
                    "Edit proposal ready",
                    data={"run_id": run_id, "files_changed": proposal.proposal.summary.files_changed},
                )
            except Exception as exc:
                message = error_message(exc, "Edit run failed")
                logger.error("Edit run failed", data={"run_id": run_id, "error": message})
                self._emit(ErrorEvent, run_id, message=message, code=error_code(exc))
                self._emit(StatusEvent, run_id, status="failed")
                raise
            finally:
                self._runs.pop(run_id, None)
