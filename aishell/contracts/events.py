"""Run event contracts.

Two tagged unions share the ``type`` discriminator: ``AgentEvent`` for the
deep-agent, edit, chat and planning workflows and ``SddRunEvent`` for the
SDD pipeline. Their kinds do not overlap, so ``RunEvent`` validates either.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from aishell.contracts.base import ContractModel, UuidStr
from aishell.contracts.conversations import AgentMessageRole
from aishell.contracts.drafts import AgentDraft
from aishell.contracts.proposals import AgentEditProposal, Proposal
from aishell.contracts.runs import AgentRunStatus, SddStep
from aishell.contracts.tools import ToolCallEnvelope, ToolCallResult


class RunEventBase(ContractModel):
    id: UuidStr
    run_id: UuidStr
    timestamp: str


# Agent events


class StatusEvent(RunEventBase):
    type: Literal["status"] = "status"
    status: AgentRunStatus


class PlanEvent(RunEventBase):
    type: Literal["plan"] = "plan"
    steps: list[str]


class PlanStepEvent(RunEventBase):
    type: Literal["plan-step"] = "plan-step"
    step_id: str
    title: str
    status: Literal["pending", "in-progress", "completed", "failed"]


class TodoUpdateEvent(RunEventBase):
    type: Literal["todo-update"] = "todo-update"
    todo_id: str
    title: str
    status: Literal["pending", "in-progress", "completed"]


class ToolCallEvent(RunEventBase):
    type: Literal["tool-call"] = "tool-call"
    tool_call: ToolCallEnvelope


class ToolResultEvent(RunEventBase):
    type: Literal["tool-result"] = "tool-result"
    result: ToolCallResult


class LogEvent(RunEventBase):
    type: Literal["log"] = "log"
    level: Literal["info", "warning", "error"]
    message: str


class ErrorEvent(RunEventBase):
    type: Literal["error"] = "error"
    message: str
    code: Optional[str] = None


class EditProposalEvent(RunEventBase):
    type: Literal["edit-proposal"] = "edit-proposal"
    proposal: AgentEditProposal
    conversation_id: Optional[UuidStr] = None


class MessageEvent(RunEventBase):
    type: Literal["message"] = "message"
    role: AgentMessageRole
    content: str
    conversation_id: Optional[UuidStr] = None


class DraftEvent(RunEventBase):
    type: Literal["draft"] = "draft"
    draft: AgentDraft


AgentEvent = Annotated[
    Union[
        StatusEvent,
        PlanEvent,
        PlanStepEvent,
        TodoUpdateEvent,
        ToolCallEvent,
        ToolResultEvent,
        LogEvent,
        ErrorEvent,
        EditProposalEvent,
        MessageEvent,
        DraftEvent,
    ],
    Field(discriminator="type"),
]


# SDD events


class SddStartedEvent(RunEventBase):
    type: Literal["started"] = "started"
    feature_id: str
    goal: str
    step: SddStep


class SddContextLoadedEvent(RunEventBase):
    type: Literal["contextLoaded"] = "contextLoaded"
    step: SddStep


class SddStepStartedEvent(RunEventBase):
    type: Literal["stepStarted"] = "stepStarted"
    step: SddStep


class SddOutputAppendedEvent(RunEventBase):
    type: Literal["outputAppended"] = "outputAppended"
    content: str


class SddProposalReadyEvent(RunEventBase):
    type: Literal["proposalReady"] = "proposalReady"
    proposal: Proposal


class SddApprovalRequiredEvent(RunEventBase):
    type: Literal["approvalRequired"] = "approvalRequired"
    proposal: Proposal


class SddTestsCompletedEvent(RunEventBase):
    type: Literal["testsCompleted"] = "testsCompleted"
    command: str
    exit_code: int
    duration_ms: int = Field(ge=0)


class SddRunCompletedEvent(RunEventBase):
    type: Literal["runCompleted"] = "runCompleted"


class SddRunFailedEvent(RunEventBase):
    type: Literal["runFailed"] = "runFailed"
    message: str


class SddRunCanceledEvent(RunEventBase):
    type: Literal["runCanceled"] = "runCanceled"
    reason: Optional[str] = None


SddRunEvent = Annotated[
    Union[
        SddStartedEvent,
        SddContextLoadedEvent,
        SddStepStartedEvent,
        SddOutputAppendedEvent,
        SddProposalReadyEvent,
        SddApprovalRequiredEvent,
        SddTestsCompletedEvent,
        SddRunCompletedEvent,
        SddRunFailedEvent,
        SddRunCanceledEvent,
    ],
    Field(discriminator="type"),
]

RunEvent = Annotated[
    Union[
        StatusEvent,
        PlanEvent,
        PlanStepEvent,
        TodoUpdateEvent,
        ToolCallEvent,
        ToolResultEvent,
        LogEvent,
        ErrorEvent,
        EditProposalEvent,
        MessageEvent,
        DraftEvent,
        SddStartedEvent,
        SddContextLoadedEvent,
        SddStepStartedEvent,
        SddOutputAppendedEvent,
        SddProposalReadyEvent,
        SddApprovalRequiredEvent,
        SddTestsCompletedEvent,
        SddRunCompletedEvent,
        SddRunFailedEvent,
        SddRunCanceledEvent,
    ],
    Field(discriminator="type"),
]

agent_event_adapter: TypeAdapter = TypeAdapter(AgentEvent)
sdd_event_adapter: TypeAdapter = TypeAdapter(SddRunEvent)
run_event_adapter: TypeAdapter = TypeAdapter(RunEvent)
