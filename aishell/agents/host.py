"""Agent host message handling.

The host side of the process split: it accepts ``agent-host:start-run``
messages, runs them through a ``DeepAgentRunner`` and forwards every event
back as ``agent-host:event``. A failed run is reported once more as
``agent-host:run-error`` carrying the failure message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from pydantic import TypeAdapter, ValidationError

from aishell.agents.deep.deep_agent import DeepAgentRunner
from aishell.contracts.base import is_uuid
from aishell.contracts.events import RunEventBase
from aishell.contracts.runs import AgentRunStartRequest
from aishell.contracts.tools import ToolCallEnvelope
from aishell.core.logging import get_logger
from aishell.services.broker_client import ToolExecutor

logger = get_logger(__name__)

START_RUN_MESSAGE = "agent-host:start-run"
EVENT_MESSAGE = "agent-host:event"
RUN_ERROR_MESSAGE = "agent-host:run-error"

_tool_calls_adapter = TypeAdapter(list[ToolCallEnvelope])

SendMessage = Callable[[dict[str, Any]], Any]


@dataclass
class StartRunMessage:
    run_id: str
    request: AgentRunStartRequest
    tool_calls: list[ToolCallEnvelope] = field(default_factory=list)


def parse_start_run_message(message: Any) -> Optional[StartRunMessage]:
    """Validate a start-run message; anything malformed yields None."""
    if not isinstance(message, dict) or message.get("type") != START_RUN_MESSAGE:
        return None
    run_id = message.get("runId")
    if not run_id or not message.get("request") or not is_uuid(run_id):
        return None

    try:
        request = AgentRunStartRequest.model_validate(message["request"])
        raw_calls = message.get("toolCalls")
        tool_calls = _tool_calls_adapter.validate_python(raw_calls) if raw_calls else []
    except ValidationError as exc:
        logger.warning("Rejected start-run message", data={"run_id": run_id, "errors": exc.error_count()})
        return None

    return StartRunMessage(run_id=run_id, request=request, tool_calls=tool_calls)


class AgentHost:
    """Dispatches start-run messages to a deep agent runner.

    Args:
        tool_executor: Executor handed to the runner
        send: Delivers host messages to the other side of the process boundary
        runner: Prebuilt runner; one is created from ``tool_executor`` if omitted
    """

    def __init__(self, tool_executor: ToolExecutor, send: SendMessage, runner: Optional[DeepAgentRunner] = None):
        self._send = send
        self.runner = runner or DeepAgentRunner(tool_executor, on_event=self._forward_event)

    def _forward_event(self, event: RunEventBase) -> None:
        self._send({"type": EVENT_MESSAGE, "event": event.to_wire()})

    async def handle_message(self, message: Any) -> bool:
        """Run a start-run message to completion; returns False if the message was ignored."""
        start = parse_start_run_message(message)
        if start is None:
            return False

        try:
            await self.runner.start_run(start.run_id, start.request, start.tool_calls)
        except Exception as exc:
            self._send({"type": RUN_ERROR_MESSAGE, "runId": start.run_id, "message": str(exc) or "Agent run failed"})
        return True
