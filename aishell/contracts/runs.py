"""Run start and control requests."""

from __future__ import annotations

from typing import Literal, Optional

from aishell.contracts.base import ContractModel, JsonValue, NonEmptyStr, UuidStr

AgentRunStatus = Literal["queued", "running", "completed", "failed", "canceled"]

SddStep = Literal["spec", "plan", "tasks", "implement", "review"]
SDD_STEPS: tuple[str, ...] = ("spec", "plan", "tasks", "implement", "review")


class AgentRunConfig(ContractModel):
    model_ref: Optional[str] = None


class AgentRunStartRequest(ContractModel):
    goal: NonEmptyStr
    inputs: Optional[dict[str, JsonValue]] = None
    tool_allowlist: Optional[list[str]] = None
    metadata: Optional[dict[str, str]] = None
    connection_id: Optional[str] = None
    config: Optional[AgentRunConfig] = None


class SddRunStartRequest(ContractModel):
    feature_id: NonEmptyStr
    goal: NonEmptyStr
    step: Optional[SddStep] = None
    connection_id: Optional[str] = None
    config: Optional[AgentRunConfig] = None


class SddRunControlRequest(ContractModel):
    run_id: UuidStr
    action: Literal["cancel", "retry"]
    reason: Optional[str] = None
