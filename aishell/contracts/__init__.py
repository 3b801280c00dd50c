"""Wire contracts shared by the broker, the runners and the MCP bridge."""

from aishell.contracts.base import (
    ContractModel,
    JsonValue,
    UuidStr,
    is_json_value,
    is_uuid,
    utc_now_iso,
)
from aishell.contracts.conversations import AgentMessageRole, ChatHistoryEntry
from aishell.contracts.drafts import AgentDraft
from aishell.contracts.events import (
    AgentEvent,
    RunEvent,
    SddRunEvent,
    agent_event_adapter,
    run_event_adapter,
    sdd_event_adapter,
)
from aishell.contracts.mcp import (
    McpServerContribution,
    McpServerRef,
    McpServerStatus,
    McpToolDefinition,
    McpToolListResponse,
)
from aishell.contracts.proposals import (
    AgentContextAttachment,
    AgentEditProposal,
    AgentEditRequestOptions,
    Proposal,
    ProposalSummary,
    ProposalWrite,
)
from aishell.contracts.runs import (
    AgentRunStartRequest,
    AgentRunStatus,
    SddRunControlRequest,
    SddRunStartRequest,
    SddStep,
)
from aishell.contracts.tools import (
    AgentPolicyConfig,
    AgentToolAccessAuditEvent,
    PolicyDecision,
    ToolCallEnvelope,
    ToolCallResult,
    ToolErrorCode,
)
from aishell.contracts.validate import parse_contract

__all__ = [
    "AgentContextAttachment",
    "AgentDraft",
    "AgentEditProposal",
    "AgentEditRequestOptions",
    "AgentEvent",
    "AgentMessageRole",
    "AgentPolicyConfig",
    "AgentRunStartRequest",
    "AgentRunStatus",
    "AgentToolAccessAuditEvent",
    "ChatHistoryEntry",
    "ContractModel",
    "JsonValue",
    "McpServerContribution",
    "McpServerRef",
    "McpServerStatus",
    "McpToolDefinition",
    "McpToolListResponse",
    "PolicyDecision",
    "Proposal",
    "ProposalSummary",
    "ProposalWrite",
    "RunEvent",
    "SddRunControlRequest",
    "SddRunEvent",
    "SddRunStartRequest",
    "SddStep",
    "ToolCallEnvelope",
    "ToolCallResult",
    "ToolErrorCode",
    "UuidStr",
    "agent_event_adapter",
    "is_json_value",
    "is_uuid",
    "parse_contract",
    "run_event_adapter",
    "sdd_event_adapter",
    "utc_now_iso",
]
