"""Tool call envelope, result, policy decision and audit record contracts."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import ConfigDict, Field, model_validator

from aishell.contracts.base import ContractModel, JsonValue, NonEmptyStr, UuidStr


class ToolErrorCode:
    """Error codes carried by failed ``ToolCallResult`` values."""

    POLICY_DENIED = "POLICY_DENIED"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"
    INVALID_TOOL_OUTPUT = "INVALID_TOOL_OUTPUT"


class ToolCallEnvelope(ContractModel):
    """Immutable request wrapper for one tool call."""

    model_config = ConfigDict(frozen=True)

    call_id: UuidStr
    tool_id: NonEmptyStr
    requester_id: NonEmptyStr
    run_id: UuidStr
    input: JsonValue = None
    reason: Optional[str] = None


class ToolCallResult(ContractModel):
    call_id: UuidStr
    tool_id: NonEmptyStr
    run_id: UuidStr
    ok: bool
    output: JsonValue = None
    error: Optional[str] = None
    duration_ms: int = Field(ge=0)

    @model_validator(mode="after")
    def check_outcome(self) -> "ToolCallResult":
        if self.ok and self.error is not None:
            raise ValueError("error is only allowed when ok is false")
        if not self.ok and self.output is not None:
            raise ValueError("output is only allowed when ok is true")
        return self


PolicyScope = Literal["run", "session", "global"]


class PolicyDecision(ContractModel):
    allowed: bool
    reason: Optional[str] = None
    scope: PolicyScope


class AgentPolicyConfig(ContractModel):
    """Per-run allow/deny override layered on top of the global lists."""

    allowlist: Optional[list[str]] = None
    denylist: Optional[list[str]] = None


class AgentToolAccessAuditEvent(ContractModel):
    id: UuidStr
    type: Literal["agent-tool-access"] = "agent-tool-access"
    run_id: UuidStr
    tool_id: NonEmptyStr
    requester_id: NonEmptyStr
    reason: Optional[str] = None
    allowed: bool
    created_at: str
