"""Tool broker: registry, policy gate, audit and result normalization."""

from __future__ import annotations

import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from aishell.contracts.base import is_json_value
from aishell.contracts.tools import (
    AgentPolicyConfig,
    ToolCallEnvelope,
    ToolCallResult,
    ToolErrorCode,
)
from aishell.contracts.validate import parse_contract
from aishell.core.exceptions import InvalidToolOutputError, ToolInputError
from aishell.core.logging import get_logger
from aishell.services.audit_service import AuditLogger
from aishell.services.policy_service import PolicyService

logger = get_logger(__name__)

ToolHandler = Callable[[Any, ToolCallEnvelope], Union[Any, Awaitable[Any]]]
Validator = Callable[[Any], bool]


@dataclass
class ToolDefinition:
    """A tool with optional input/output validators around its handler."""

    id: str
    execute: ToolHandler
    description: Optional[str] = None
    input_validator: Optional[Validator] = None
    output_validator: Optional[Validator] = None


async def _call_handler(handler: ToolHandler, tool_input: Any, envelope: ToolCallEnvelope) -> Any:
    result = handler(tool_input, envelope)
    if inspect.isawaitable(result):
        result = await result
    return result


class ToolBroker:
    """Owns the tool registry and executes policy-gated tool calls.

    Every call produces exactly one audit record and at most one handler
    invocation. Failures are reported as ``ok=false`` results, never retried.
    """

    def __init__(
        self,
        policy_service: Optional[PolicyService] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.policy_service = policy_service or PolicyService()
        self.audit_logger = audit_logger
        self._clock = clock
        self._handlers: dict[str, ToolHandler] = {}
        self._descriptions: dict[str, Optional[str]] = {}

    def register_tool(self, tool_id: str, handler: ToolHandler, description: Optional[str] = None) -> None:
        """Register ``handler`` under ``tool_id``; a later registration replaces it."""
        if tool_id in self._handlers:
            logger.debug("Replacing tool handler", data={"tool_id": tool_id})
        self._handlers[tool_id] = handler
        self._descriptions[tool_id] = description

    def register_tool_definition(self, definition: ToolDefinition) -> None:
        tool_id = definition.id

        async def handler(tool_input: Any, envelope: ToolCallEnvelope) -> Any:
            if definition.input_validator is not None and not definition.input_validator(tool_input):
                raise ToolInputError(tool_id)
            output = await _call_handler(definition.execute, tool_input, envelope)
            if definition.output_validator is not None and not definition.output_validator(output):
                raise InvalidToolOutputError(tool_id)
            return output

        self.register_tool(tool_id, handler, definition.description)

    def unregister_tool(self, tool_id: str) -> None:
        self._handlers.pop(tool_id, None)
        self._descriptions.pop(tool_id, None)

    def has_tool(self, tool_id: str) -> bool:
        return tool_id in self._handlers

    def list_tools(self) -> list[str]:
        return list(self._handlers)

    def describe_tool(self, tool_id: str) -> Optional[str]:
        return self._descriptions.get(tool_id)

    async def handle_agent_tool_call(
        self,
        envelope: ToolCallEnvelope | dict,
        run_policy_override: Optional[AgentPolicyConfig] = None,
    ) -> ToolCallResult:
        """Execute one tool call.

        Args:
            envelope: Tool call envelope (model or wire dict)
            run_policy_override: Optional per-run allow/deny lists

        Returns:
            ToolCallResult; denials and failures are results, not exceptions

        Raises:
            ContractValidationError: If the envelope is malformed
        """
        validated = parse_contract(ToolCallEnvelope, envelope)
        decision = self.policy_service.evaluate_tool_call(validated, run_policy_override)
        self._audit(validated, decision.allowed, decision.reason)

        if not decision.allowed:
            return self._failure(validated, ToolErrorCode.POLICY_DENIED, 0)

        handler = self._handlers.get(validated.tool_id)
        if handler is None:
            return self._failure(validated, ToolErrorCode.TOOL_NOT_FOUND, 0)

        started = self._clock()
        try:
            output = await _call_handler(handler, validated.input, validated)
        except InvalidToolOutputError:
            logger.warning("Tool output failed validation", data={"tool_id": validated.tool_id})
            return self._failure(validated, ToolErrorCode.INVALID_TOOL_OUTPUT, self._elapsed_ms(started))
        except Exception:
            logger.exception(
                "Tool execution failed",
                data={"tool_id": validated.tool_id, "call_id": validated.call_id},
            )
            return self._failure(validated, ToolErrorCode.TOOL_EXECUTION_FAILED, self._elapsed_ms(started))

        duration_ms = self._elapsed_ms(started)
        if output is not None and not is_json_value(output):
            logger.warning("Tool returned a non-JSON value", data={"tool_id": validated.tool_id})
            return self._failure(validated, ToolErrorCode.INVALID_TOOL_OUTPUT, duration_ms)

        return ToolCallResult(
            call_id=validated.call_id,
            tool_id=validated.tool_id,
            run_id=validated.run_id,
            ok=True,
            output=output,
            duration_ms=duration_ms,
        )

    def _elapsed_ms(self, started: float) -> int:
        return max(0, round((self._clock() - started) * 1000))

    def _audit(self, envelope: ToolCallEnvelope, allowed: bool, reason: Optional[str]) -> None:
        if self.audit_logger is None:
            return
        try:
            self.audit_logger.log_agent_tool_access(
                run_id=envelope.run_id,
                tool_id=envelope.tool_id,
                requester_id=envelope.requester_id,
                allowed=allowed,
                reason=reason,
            )
        except Exception:
            logger.exception("Audit logger failed", data={"tool_id": envelope.tool_id})

    @staticmethod
    def _failure(envelope: ToolCallEnvelope, code: str, duration_ms: int) -> ToolCallResult:
        return ToolCallResult(
            call_id=envelope.call_id,
            tool_id=envelope.tool_id,
            run_id=envelope.run_id,
            ok=False,
            error=code,
            duration_ms=duration_ms,
        )
