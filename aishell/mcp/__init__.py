"""MCP stdio transport, server lifecycle and broker bridge."""

from aishell.mcp.framing import FrameCodec
from aishell.mcp.server_definitions import (
    ExtensionSnapshot,
    McpConnection,
    McpServerDefinition,
    build_mcp_server_key,
    get_mcp_server_definitions,
    resolve_mcp_env,
)
from aishell.mcp.server_manager import McpServerManager
from aishell.mcp.stdio_client import McpJsonRpcConnection, McpStdioClient
from aishell.mcp.tool_bridge import McpToolBridge, build_mcp_tool_id, parse_mcp_tool_id

__all__ = [
    "ExtensionSnapshot",
    "FrameCodec",
    "McpConnection",
    "McpJsonRpcConnection",
    "McpServerDefinition",
    "McpServerManager",
    "McpStdioClient",
    "McpToolBridge",
    "build_mcp_server_key",
    "build_mcp_tool_id",
    "get_mcp_server_definitions",
    "parse_mcp_tool_id",
    "resolve_mcp_env",
]
