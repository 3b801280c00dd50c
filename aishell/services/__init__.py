"""Broker-side services: policy, audit, tool broker, executors and run events."""

from aishell.services.audit_service import AuditLogger, AuditService
from aishell.services.broker_client import (
    BrokerClient,
    LocalToolExecutor,
    LoopbackTransport,
    ToolCallHandler,
    ToolExecutor,
)
from aishell.services.policy_service import PolicyService
from aishell.services.run_events import RunEventEmitter
from aishell.services.tool_broker import ToolBroker, ToolDefinition
from aishell.services.workspace_tools import register_workspace_tools

__all__ = [
    "AuditLogger",
    "AuditService",
    "BrokerClient",
    "LocalToolExecutor",
    "LoopbackTransport",
    "PolicyService",
    "RunEventEmitter",
    "ToolBroker",
    "ToolCallHandler",
    "ToolDefinition",
    "ToolExecutor",
    "register_workspace_tools",
]
