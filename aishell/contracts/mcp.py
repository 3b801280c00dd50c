"""MCP server and tool contracts."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import Field

from aishell.contracts.base import ContractModel, NonEmptyStr

McpServerState = Literal["stopped", "starting", "running", "stopping", "failed"]


class McpServerRef(ContractModel):
    extension_id: NonEmptyStr
    server_id: NonEmptyStr


class McpToolDefinition(ContractModel):
    """A tool as advertised by ``tools/list``."""

    name: NonEmptyStr
    description: Optional[str] = None
    input_schema: Optional[dict[str, Any]] = None
    output_schema: Optional[dict[str, Any]] = None


class McpToolListResponse(ContractModel):
    tools: list[McpToolDefinition]


class McpServerStatus(ContractModel):
    extension_id: NonEmptyStr
    server_id: NonEmptyStr
    state: McpServerState
    message: Optional[str] = None
    updated_at: str


class McpServerToolsResponse(ContractModel):
    server: McpServerRef
    tools: list[McpToolDefinition]


class McpEnvMapping(ContractModel):
    source: Literal["config", "secret"]
    # Connection config key; defaults to the environment variable name
    key: Optional[str] = None


class McpServerContribution(ContractModel):
    """One ``mcpServers`` entry from an extension manifest."""

    id: NonEmptyStr
    name: NonEmptyStr
    transport: Literal["stdio"] = "stdio"
    command: NonEmptyStr
    args: list[str] = Field(default_factory=list)
    env: Optional[dict[str, McpEnvMapping]] = None
    connection_provider_id: Optional[str] = None


class McpServerSummary(ContractModel):
    extension_id: str
    server_id: str
    name: str
    transport: Literal["stdio"]
    connection_provider_id: Optional[str] = None
    status: McpServerStatus
