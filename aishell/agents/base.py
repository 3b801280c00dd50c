"""Shared plumbing for workflow runners: ids, clocks, event emission, model calls."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from aishell.contracts.base import utc_now_iso
from aishell.contracts.events import RunEventBase
from aishell.contracts.runs import AgentRunConfig
from aishell.contracts.tools import ToolCallEnvelope, ToolCallResult
from aishell.core.exceptions import AgentCoreError, ModelOutputError
from aishell.core.logging import get_logger
from aishell.services.broker_client import ToolExecutor

logger = get_logger(__name__)

MODEL_GENERATE_TOOL_ID = "model.generate"

EventSink = Callable[[Any], Any]


@dataclass
class RunState:
    run_id: str
    status: str = "running"
    step: Optional[str] = None


def error_message(exc: BaseException, fallback: str) -> str:
    if isinstance(exc, AgentCoreError):
        return exc.message or fallback
    return str(exc) or fallback


def error_code(exc: BaseException) -> Optional[str]:
    return exc.code if isinstance(exc, AgentCoreError) else None


class WorkflowRunner:
    """Base class for the workflow runners.

    Args:
        tool_executor: Executes tool call envelopes (locally or over a transport)
        on_event: Receives every validated event, typically ``RunEventEmitter.emit``
        now: ISO-8601 timestamp source
        id_provider: UUID string source for event and call ids
        requester_id: ``requesterId`` stamped on envelopes built by the runner
    """

    workflow = "workflow"

    def __init__(
        self,
        tool_executor: ToolExecutor,
        on_event: EventSink,
        now: Optional[Callable[[], str]] = None,
        id_provider: Optional[Callable[[], str]] = None,
        requester_id: Optional[str] = None,
    ):
        if requester_id is None:
            from aishell.config.settings import get_settings

            requester_id = get_settings().agent_requester_id
        self.tool_executor = tool_executor
        self._on_event = on_event
        self._now = now or utc_now_iso
        self._id_provider = id_provider or (lambda: str(uuid.uuid4()))
        self.requester_id = requester_id
        self._runs: dict[str, RunState] = {}

    def active_runs(self) -> list[str]:
        return list(self._runs)

    def _emit(self, event_cls: type[RunEventBase], run_id: str, **fields: Any) -> RunEventBase:
        event = event_cls(id=self._id_provider(), run_id=run_id, timestamp=self._now(), **fields)
        self._on_event(event)
        return event

    def _envelope(self, run_id: str, tool_id: str, tool_input: Any, reason: Optional[str]) -> ToolCallEnvelope:
        return ToolCallEnvelope(
            call_id=self._id_provider(),
            tool_id=tool_id,
            requester_id=self.requester_id,
            run_id=run_id,
            input=tool_input,
            reason=reason,
        )

    @staticmethod
    def _model_input(
        prompt: str,
        system_prompt: Optional[str] = None,
        connection_id: Optional[str] = None,
        config: Optional[AgentRunConfig] = None,
    ) -> dict[str, Any]:
        model_input: dict[str, Any] = {"prompt": prompt}
        if system_prompt:
            model_input["systemPrompt"] = system_prompt
        if connection_id:
            model_input["connectionId"] = connection_id
        if config is not None and config.model_ref:
            model_input["modelRef"] = config.model_ref
        return model_input

    async def _generate_text(self, run_id: str, model_input: dict[str, Any], reason: str) -> str:
        """Run ``model.generate`` and return its ``text`` output."""
        envelope = self._envelope(run_id, MODEL_GENERATE_TOOL_ID, model_input, reason)
        result: ToolCallResult = await self.tool_executor.execute_tool_call(envelope)
        if not result.ok:
            raise ModelOutputError(result.error or "model.generate failed")
        output = result.output
        if not isinstance(output, dict) or not isinstance(output.get("text"), str):
            raise ModelOutputError("model.generate returned invalid output")
        logger.debug(
            "model.generate completed",
            data={"run_id": run_id, "duration_ms": result.duration_ms, "chars": len(output["text"])},
        )
        return output["text"]
