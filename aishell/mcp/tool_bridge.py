"""Bridges tools exposed by MCP servers into the tool broker namespace.

Broker ids look like ``mcp:<extensionId>:<serverId>:<toolName>`` with each
segment percent-encoded, so equal tool names on different servers never
collide.
"""

from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import quote, unquote

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from aishell.contracts.base import is_json_value
from aishell.contracts.mcp import McpServerRef, McpServerToolsResponse, McpToolDefinition
from aishell.contracts.tools import ToolCallEnvelope
from aishell.core.exceptions import InvalidToolOutputError, McpInvalidResponseError, McpServerNotRunningError
from aishell.core.logging import get_logger
from aishell.mcp.server_definitions import server_key_for
from aishell.mcp.server_manager import McpServerManager
from aishell.mcp.stdio_client import McpStdioClient
from aishell.services.tool_broker import ToolBroker, ToolDefinition

logger = get_logger(__name__)

MCP_TOOL_PREFIX = "mcp:"

ClientFactory = Callable[[Any], McpStdioClient]


def build_mcp_tool_id(ref: McpServerRef, tool_name: str) -> str:
    segments = (ref.extension_id, ref.server_id, tool_name)
    return MCP_TOOL_PREFIX + ":".join(quote(segment, safe="") for segment in segments)


def parse_mcp_tool_id(tool_id: str) -> Optional[tuple[McpServerRef, str]]:
    """Split a bridge tool id into its server ref and tool name, or None."""
    if not tool_id.startswith(MCP_TOOL_PREFIX):
        return None
    parts = tool_id[len(MCP_TOOL_PREFIX):].split(":")
    if len(parts) != 3:
        return None
    try:
        extension_id, server_id, tool_name = (unquote(part, errors="strict") for part in parts)
    except UnicodeDecodeError:
        return None
    if not extension_id or not server_id or not tool_name:
        return None
    return McpServerRef(extension_id=extension_id, server_id=server_id), tool_name


def build_schema_validator(schema: Optional[dict[str, Any]], label: str) -> Callable[[Any], bool]:
    """Compile ``schema`` into a predicate.

    Without a schema any JSON value passes. A schema that does not compile
    yields a validator that rejects everything.
    """
    if schema is None:
        return is_json_value
    try:
        Draft202012Validator.check_schema(schema)
        validator = Draft202012Validator(schema)
    except SchemaError as exc:
        logger.warning("Invalid MCP tool schema", data={"schema": label, "error": exc.message})
        return lambda value: False

    def validate(value: Any) -> bool:
        if not is_json_value(value):
            return False
        try:
            return validator.is_valid(value)
        except Exception:
            # e.g. an unresolvable $ref only surfaces at validation time
            logger.debug("MCP tool schema validation raised", data={"schema": label}, exc_info=True)
            return False

    return validate


@dataclass
class _ClientEntry:
    process: Any
    client: McpStdioClient


class McpToolBridge:
    def __init__(
        self,
        broker: ToolBroker,
        server_manager: McpServerManager,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.broker = broker
        self.server_manager = server_manager
        self._client_factory = client_factory or McpStdioClient.from_process
        self._clients: dict[str, _ClientEntry] = {}
        self._tool_ids: dict[str, list[str]] = {}

    @staticmethod
    def is_mcp_tool(tool_id: str) -> bool:
        return parse_mcp_tool_id(tool_id) is not None

    async def ensure_tool_registered(self, tool_id: str) -> bool:
        """Make sure ``tool_id`` is registered, refreshing its server if needed.

        Returns:
            True if the tool is registered afterwards
        """
        parsed = parse_mcp_tool_id(tool_id)
        if parsed is None:
            return False
        if self.broker.has_tool(tool_id):
            return True
        ref, tool_name = parsed
        response = await self.refresh_server_tools(ref)
        return any(tool.name == tool_name for tool in response.tools)

    async def refresh_server_tools(self, ref: McpServerRef) -> McpServerToolsResponse:
        """Re-list a server's tools and replace its broker registrations.

        On any failure the server's tools are cleared and an empty list is
        returned.
        """
        try:
            client = self._get_client(ref)
            listed = await client.list_tools()
            self._register_server_tools(ref, listed.tools)
        except Exception:
            logger.warning(
                "Failed to refresh MCP server tools",
                data={"server": server_key_for(ref)},
                exc_info=True,
            )
            self.clear_server_tools(ref)
            return McpServerToolsResponse(server=ref, tools=[])

        self._set_manager_tools(ref, listed.tools)
        logger.info(
            "Registered MCP server tools",
            data={"server": server_key_for(ref), "count": len(listed.tools)},
        )
        return McpServerToolsResponse(server=ref, tools=listed.tools)

    def clear_server_tools(self, ref: McpServerRef) -> None:
        for tool_id in self._tool_ids.pop(server_key_for(ref), []):
            self.broker.unregister_tool(tool_id)
        self._set_manager_tools(ref, [])

    def registered_tool_ids(self, ref: McpServerRef) -> list[str]:
        return list(self._tool_ids.get(server_key_for(ref), []))

    def _register_server_tools(self, ref: McpServerRef, tools: list[McpToolDefinition]) -> None:
        # Unregister-then-register: a concurrent caller may briefly see no tools
        key = server_key_for(ref)
        for tool_id in self._tool_ids.pop(key, []):
            self.broker.unregister_tool(tool_id)

        tool_ids = []
        for tool in tools:
            tool_id = build_mcp_tool_id(ref, tool.name)
            self.broker.register_tool_definition(
                ToolDefinition(
                    id=tool_id,
                    execute=self._make_handler(ref, tool.name),
                    description=tool.description or tool_id,
                    input_validator=build_schema_validator(tool.input_schema, "input"),
                    output_validator=build_schema_validator(tool.output_schema, "output"),
                )
            )
            tool_ids.append(tool_id)
        self._tool_ids[key] = tool_ids

    def _make_handler(self, ref: McpServerRef, tool_name: str):
        async def execute(tool_input: Any, envelope: ToolCallEnvelope) -> Any:
            client = self._get_client(ref)
            try:
                return await client.call_tool(tool_name, tool_input)
            except McpInvalidResponseError as exc:
                raise InvalidToolOutputError(envelope.tool_id) from exc

        return execute

    def _set_manager_tools(self, ref: McpServerRef, tools: list[McpToolDefinition]) -> None:
        try:
            self.server_manager.set_tools(ref, tools)
        except Exception:
            logger.debug("Could not update server manager tool cache", data={"server": server_key_for(ref)})

    def _get_client(self, ref: McpServerRef) -> McpStdioClient:
        key = server_key_for(ref)
        process = self.server_manager.get_server_process(ref)
        if process is None:
            raise McpServerNotRunningError(key)

        entry = self._clients.get(key)
        if entry is not None and entry.process is process:
            return entry.client
        if entry is not None:
            entry.client.close()
            del self._clients[key]

        client = self._client_factory(process)
        self._clients[key] = _ClientEntry(process=process, client=client)
        watcher = asyncio.ensure_future(process.wait())
        watcher.add_done_callback(functools.partial(self._on_process_exit, ref, process))
        return client

    def _on_process_exit(self, ref: McpServerRef, process: Any, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        self._handle_server_exit(ref, process)

    def _handle_server_exit(self, ref: McpServerRef, process: Any) -> None:
        key = server_key_for(ref)
        entry = self._clients.get(key)
        if entry is None or entry.process is not process:
            return
        logger.info("MCP server exited, tearing down client", data={"server": key})
        entry.client.close()
        del self._clients[key]
        self.clear_server_tools(ref)

    def close(self) -> None:
        for entry in self._clients.values():
            entry.client.close()
        self._clients.clear()
