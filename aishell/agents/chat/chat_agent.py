"""Chat workflow runner: one model call answered as one agent message."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError

from aishell.agents.attachments import parse_attachments, resolve_conversation_id
from aishell.agents.base import RunState, WorkflowRunner, error_code, error_message
from aishell.agents.chat.prompts import CHAT_SYSTEM_PROMPT, build_chat_prompt
from aishell.contracts.conversations import ChatHistoryEntry
from aishell.contracts.events import ErrorEvent, MessageEvent, StatusEvent
from aishell.contracts.runs import AgentRunStartRequest
from aishell.contracts.validate import parse_contract
from aishell.core.logging import bind_run_context, get_logger

logger = get_logger(__name__)

_history_adapter = TypeAdapter(list[ChatHistoryEntry])


def parse_history(inputs: Optional[dict[str, Any]]) -> list[ChatHistoryEntry]:
    """History from ``inputs.history``; one bad entry discards all of it."""
    if not inputs or "history" not in inputs:
        return []
    try:
        return _history_adapter.validate_python(inputs["history"])
    except ValidationError:
        logger.debug("Ignoring malformed chat history")
        return []


class ChatWorkflowRunner(WorkflowRunner):
    workflow = "chat"

    async def start_run(self, run_id: str, request: AgentRunStartRequest | dict) -> None:
        validated = parse_contract(AgentRunStartRequest, request)
        inputs = validated.inputs
        prompt = build_chat_prompt(validated.goal, parse_attachments(inputs), parse_history(inputs))

        with bind_run_context(run_id, self.workflow):
            self._runs[run_id] = RunState(run_id=run_id)
            self._emit(StatusEvent, run_id, status="running")
            try:
                model_input = self._model_input(
                    prompt,
                    system_prompt=CHAT_SYSTEM_PROMPT,
                    connection_id=validated.connection_id,
                    config=validated.config,
                )
                text = await self._generate_text(run_id, model_input, "Chat response generation")
                # whitespace-only replies are kept verbatim
                content = text.strip() or text

                self._emit(
                    MessageEvent,
                    run_id,
                    role="agent",
                    content=content,
                    conversation_id=resolve_conversation_id(validated, inputs),
                )
                self._emit(StatusEvent, run_id, status="completed")
                logger.info("Chat reply ready", data={"run_id": run_id, "chars": len(content)})
            except Exception as exc:
                message = error_message(exc, "Chat run failed")
                logger.error("Chat run failed", data={"run_id": run_id, "error": message})
                self._emit(ErrorEvent, run_id, message=message, code=error_code(exc))
                self._emit(StatusEvent, run_id, status="failed")
                raise
            finally:
                self._runs.pop(run_id, None)
