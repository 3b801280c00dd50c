"""Lifecycle of MCP server processes.

Each server runs as an ``asyncio`` subprocess with piped stdio. Status moves
through ``stopped -> starting -> running -> stopping -> stopped``; an
unexpected exit lands in ``failed``. Process exit is observed by a
``process.wait()`` task, never by polling.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from aishell.contracts.base import utc_now_iso
from aishell.contracts.mcp import (
    McpServerRef,
    McpServerState,
    McpServerStatus,
    McpServerSummary,
    McpServerToolsResponse,
    McpToolDefinition,
)
from aishell.core.exceptions import McpServerNotFoundError
from aishell.core.logging import get_logger
from aishell.mcp.server_definitions import (
    McpConnection,
    McpServerDefinition,
    resolve_mcp_env,
    server_key_for,
)

logger = get_logger(__name__)

SpawnFn = Callable[[McpServerDefinition, dict[str, str]], Awaitable[Any]]
DefinitionSource = Union[Mapping[str, McpServerDefinition], Callable[[], Mapping[str, McpServerDefinition]]]


async def spawn_stdio_process(definition: McpServerDefinition, env: dict[str, str]) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        definition.command,
        *definition.args,
        cwd=definition.extension_path,
        env={**os.environ, **env},
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


@dataclass
class _ServerRuntime:
    status: McpServerStatus
    process: Any = None
    tools: list[McpToolDefinition] = field(default_factory=list)
    watcher: Optional[asyncio.Task] = None
    stderr_task: Optional[asyncio.Task] = None
    kill_handle: Optional[asyncio.TimerHandle] = None


class McpServerManager:
    """Starts, stops and tracks MCP server processes."""

    def __init__(
        self,
        definitions: DefinitionSource,
        connection_resolver: Optional[Callable[[McpServerDefinition], Optional[McpConnection]]] = None,
        get_secret: Optional[Callable[[str], str]] = None,
        spawn: SpawnFn = spawn_stdio_process,
        now: Callable[[], str] = utc_now_iso,
        stop_timeout_seconds: Optional[float] = None,
    ):
        if stop_timeout_seconds is None:
            from aishell.config.settings import get_settings

            stop_timeout_seconds = get_settings().mcp_stop_timeout_seconds
        self._definitions = definitions
        self._connection_resolver = connection_resolver or (lambda definition: None)
        self._get_secret = get_secret or self._no_secrets
        self._spawn = spawn
        self._now = now
        self.stop_timeout_seconds = stop_timeout_seconds
        self._runtimes: dict[str, _ServerRuntime] = {}

    @staticmethod
    def _no_secrets(secret_ref: str) -> str:
        raise LookupError(f"No secret store configured for {secret_ref}")

    def _all_definitions(self) -> Mapping[str, McpServerDefinition]:
        source = self._definitions
        return source() if callable(source) else source

    def get_definition(self, ref: McpServerRef) -> McpServerDefinition:
        key = server_key_for(ref)
        definition = self._all_definitions().get(key)
        if definition is None:
            raise McpServerNotFoundError(key)
        return definition

    def _ensure_runtime(self, definition: McpServerDefinition) -> _ServerRuntime:
        runtime = self._runtimes.get(definition.key)
        if runtime is None:
            runtime = _ServerRuntime(status=self._build_status(definition, "stopped"))
            self._runtimes[definition.key] = runtime
        return runtime

    def _build_status(
        self, definition: McpServerDefinition, state: McpServerState, message: Optional[str] = None
    ) -> McpServerStatus:
        return McpServerStatus(
            extension_id=definition.extension_id,
            server_id=definition.server_id,
            state=state,
            message=message,
            updated_at=self._now(),
        )

    def _update_status(
        self, definition: McpServerDefinition, state: McpServerState, message: Optional[str] = None
    ) -> McpServerStatus:
        runtime = self._ensure_runtime(definition)
        runtime.status = self._build_status(definition, state, message)
        logger.info(
            "MCP server %s" % state,
            data={"server": definition.key, "message": message},
        )
        return runtime.status

    def list_servers(self) -> list[McpServerSummary]:
        summaries = []
        for definition in self._all_definitions().values():
            runtime = self._ensure_runtime(definition)
            summaries.append(
                McpServerSummary(
                    extension_id=definition.extension_id,
                    server_id=definition.server_id,
                    name=definition.name,
                    transport="stdio",
                    connection_provider_id=definition.connection_provider_id,
                    status=runtime.status,
                )
            )
        return summaries

    def get_status(self, ref: McpServerRef) -> McpServerStatus:
        return self._ensure_runtime(self.get_definition(ref)).status

    def get_server_process(self, ref: McpServerRef) -> Any:
        runtime = self._runtimes.get(server_key_for(ref))
        return runtime.process if runtime else None

    def _resolve_connection(self, definition: McpServerDefinition) -> tuple[Optional[McpConnection], Optional[str]]:
        if not (definition.connection_provider_id or definition.env):
            return None, None
        connection = self._connection_resolver(definition)
        if connection is None:
            return None, "Connection required for MCP server."
        if definition.connection_provider_id and connection.provider_id != definition.connection_provider_id:
            return None, "Selected connection does not match provider."
        return connection, None

    async def start_server(self, ref: McpServerRef) -> McpServerStatus:
        definition = self.get_definition(ref)
        runtime = self._ensure_runtime(definition)
        if runtime.status.state in ("running", "starting", "stopping"):
            return runtime.status

        if definition.transport != "stdio":
            return self._update_status(definition, "failed", "Unsupported MCP transport")

        connection, error = self._resolve_connection(definition)
        if error:
            return self._update_status(definition, "failed", error)
        env, error = resolve_mcp_env(definition.env, connection, self._get_secret)
        if error:
            return self._update_status(definition, "failed", error)

        self._update_status(definition, "starting")
        try:
            process = await self._spawn(definition, env)
        except (OSError, ValueError) as exc:
            return self._update_status(definition, "failed", str(exc) or "Failed to start MCP server")

        runtime.process = process
        runtime.tools = []
        runtime.watcher = asyncio.ensure_future(process.wait())
        runtime.watcher.add_done_callback(lambda _task: self._on_exit(definition, process))
        if getattr(process, "stderr", None) is not None:
            runtime.stderr_task = asyncio.ensure_future(self._drain_stderr(definition, process.stderr))
        return self._update_status(definition, "running")

    async def _drain_stderr(self, definition: McpServerDefinition, stream: Any) -> None:
        # Unread stderr would eventually block the child on a full pipe
        while True:
            line = await stream.readline()
            if not line:
                return
            logger.debug(
                "MCP server stderr",
                data={"server": definition.key, "line": line.decode("utf-8", errors="replace").rstrip()},
            )

    async def stop_server(self, ref: McpServerRef) -> McpServerStatus:
        definition = self.get_definition(ref)
        runtime = self._ensure_runtime(definition)
        process = runtime.process
        if process is None:
            return self._update_status(definition, "stopped")

        self._update_status(definition, "stopping")
        try:
            process.terminate()
        except ProcessLookupError:
            # Already gone; the exit watcher settles the status
            return runtime.status
        except OSError as exc:
            return self._update_status(definition, "failed", str(exc) or "Failed to stop MCP server")

        loop = asyncio.get_running_loop()
        runtime.kill_handle = loop.call_later(self.stop_timeout_seconds, self._force_kill, definition.key, process)
        return runtime.status

    def _force_kill(self, key: str, process: Any) -> None:
        runtime = self._runtimes.get(key)
        if runtime is None or runtime.process is not process or process.returncode is not None:
            return
        logger.warning("MCP server ignored SIGTERM, killing", data={"server": key})
        try:
            process.kill()
        except ProcessLookupError:
            pass

    def _on_exit(self, definition: McpServerDefinition, process: Any) -> None:
        runtime = self._runtimes.get(definition.key)
        if runtime is None or runtime.process is not process:
            return
        runtime.process = None
        runtime.tools = []
        if runtime.kill_handle is not None:
            runtime.kill_handle.cancel()
            runtime.kill_handle = None

        code = process.returncode
        if runtime.status.state == "stopping" or code == 0:
            self._update_status(definition, "stopped")
            return
        if code is not None and code < 0:
            message = f"Exited with signal {-code}"
        elif code is not None:
            message = f"Exited with code {code}"
        else:
            message = "Exited with signal unknown"
        self._update_status(definition, "failed", message)

    def set_tools(self, ref: McpServerRef, tools: list[McpToolDefinition]) -> None:
        definition = self.get_definition(ref)
        self._ensure_runtime(definition).tools = list(tools)

    def refresh_tools(self, ref: McpServerRef) -> McpServerToolsResponse:
        """Return the tools last discovered for the server."""
        definition = self.get_definition(ref)
        runtime = self._ensure_runtime(definition)
        return McpServerToolsResponse(server=definition.ref, tools=runtime.tools)

    async def shutdown(self) -> None:
        """Stop every running server and wait for the processes to exit."""
        watchers = []
        for key, runtime in list(self._runtimes.items()):
            if runtime.process is None:
                continue
            definition = self._all_definitions().get(key)
            if definition is not None:
                await self.stop_server(definition.ref)
            if runtime.watcher is not None:
                watchers.append(runtime.watcher)
        if watchers:
            await asyncio.gather(*watchers, return_exceptions=True)
