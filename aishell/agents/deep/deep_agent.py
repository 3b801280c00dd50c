"""Deep-Agent runner.

Executes a sequence of tool calls strictly in order and reports the run as
``running -> completed | failed``. Without explicit calls the run is a single
``model.generate`` call built from the request goal.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from aishell.agents.base import MODEL_GENERATE_TOOL_ID, RunState, WorkflowRunner, error_code, error_message
from aishell.contracts.events import ErrorEvent, LogEvent, StatusEvent, ToolCallEvent, ToolResultEvent
from aishell.contracts.runs import AgentRunStartRequest
from aishell.contracts.tools import ToolCallEnvelope, ToolCallResult
from aishell.contracts.validate import parse_contract
from aishell.core.exceptions import RunIdMismatchError, ToolCallFailedError
from aishell.core.logging import bind_run_context, get_logger

logger = get_logger(__name__)

PREVIEW_MAX_CHARS = 240


def build_output_preview(text: str, limit: int = PREVIEW_MAX_CHARS) -> str:
    """Collapse whitespace and clip to ``limit`` characters."""
    collapsed = " ".join(text.split())
    if len(collapsed) <= limit:
        return collapsed
    return collapsed[: limit - 3].rstrip() + "..."


class DeepAgentRunner(WorkflowRunner):
    workflow = "deep-agent"

    async def start_run(
        self,
        run_id: str,
        request: AgentRunStartRequest | dict,
        tool_calls: Optional[Iterable[Any]] = None,
    ) -> None:
        """Run the tool calls for ``run_id``.

        Raises:
            ContractValidationError: If the request or a call is malformed
            RunIdMismatchError: If a call belongs to another run
            ToolCallFailedError: If a call returns ``ok=false``
        """
        validated = parse_contract(AgentRunStartRequest, request)

        with bind_run_context(run_id, self.workflow):
            self._runs[run_id] = RunState(run_id=run_id)
            logger.info("Deep agent run started", data={"run_id": run_id})
            self._emit(StatusEvent, run_id, status="running")
            try:
                calls = list(tool_calls) if tool_calls else [self._build_model_call(run_id, validated)]
                for call in calls:
                    await self._run_call(run_id, call)
                self._emit(StatusEvent, run_id, status="completed")
                logger.info("Deep agent run completed", data={"run_id": run_id, "calls": len(calls)})
            except Exception as exc:
                message = error_message(exc, "Agent run failed unexpectedly")
                logger.error("Deep agent run failed", data={"run_id": run_id, "error": message})
                self._emit(ErrorEvent, run_id, message=message, code=error_code(exc))
                self._emit(StatusEvent, run_id, status="failed")
                raise
            finally:
                self._runs.pop(run_id, None)

    async def _run_call(self, run_id: str, call: Any) -> ToolCallResult:
        envelope = parse_contract(ToolCallEnvelope, call)
        if envelope.run_id != run_id:
            raise RunIdMismatchError(envelope.run_id)

        self._emit(ToolCallEvent, run_id, tool_call=envelope)
        result = await self.tool_executor.execute_tool_call(envelope)
        self._emit(ToolResultEvent, run_id, result=result)

        if not result.ok:
            raise ToolCallFailedError(result.error or "Tool call failed", tool_id=envelope.tool_id)
        if envelope.tool_id == MODEL_GENERATE_TOOL_ID:
            self._emit_model_preview(run_id, result)
        return result

    def _build_model_call(self, run_id: str, request: AgentRunStartRequest) -> ToolCallEnvelope:
        model_input = self._model_input(
            request.goal,
            connection_id=request.connection_id,
            config=request.config,
        )
        return self._envelope(run_id, MODEL_GENERATE_TOOL_ID, model_input, "Deep agent generation")

    def _emit_model_preview(self, run_id: str, result: ToolCallResult) -> None:
        output = result.output
        text = output.get("text") if isinstance(output, dict) else None
        if not isinstance(text, str):
            return
        preview = build_output_preview(text)
        if preview:
            self._emit(LogEvent, run_id, level="info", message=f"Model output: {preview}")
