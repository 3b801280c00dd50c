"""MCP client speaking Content-Length framed JSON-RPC 2.0 over stdio."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from aishell.contracts.base import is_json_value
from aishell.contracts.mcp import McpToolListResponse
from aishell.contracts.validate import parse_contract
from aishell.core.exceptions import McpClosedError, McpInvalidResponseError, McpRemoteError, McpTimeoutError
from aishell.core.logging import get_logger
from aishell.mcp.framing import FrameCodec

logger = get_logger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class ByteReader(Protocol):
    async def read(self, n: int = -1) -> bytes: ...


class ByteWriter(Protocol):
    def write(self, data: bytes) -> None: ...


@dataclass
class _PendingRequest:
    method: str
    future: asyncio.Future
    timeout_handle: asyncio.TimerHandle


def _default_timeout() -> float:
    from aishell.config.settings import get_settings

    return get_settings().mcp_request_timeout_seconds


class McpJsonRpcConnection:
    """Request/response correlation over one duplex byte stream.

    Ids are increasing integers. A request that times out is rejected and
    evicted; the connection stays open and a late response for that id is
    dropped. End of stream or a read error rejects everything pending and
    closes the connection for good.
    """

    def __init__(
        self,
        reader: ByteReader,
        writer: ByteWriter,
        timeout_seconds: Optional[float] = None,
    ):
        self._reader = reader
        self._writer = writer
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else _default_timeout()
        self._codec = FrameCodec()
        self._pending: dict[int, _PendingRequest] = {}
        self._id = 0
        self._closed = False
        self._reader_task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _next_id(self) -> int:
        self._id += 1
        return self._id

    def _ensure_reader(self) -> None:
        if self._reader_task is None and not self._closed:
            self._reader_task = asyncio.ensure_future(self._read_loop())

    async def _read_loop(self) -> None:
        try:
            while True:
                chunk = await self._reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                for body in self._codec.feed(chunk):
                    self._handle_body(body)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("MCP stdio read failed", data={"error": str(exc)})
            self._shutdown(McpClosedError(f"MCP stdio error: {exc}"))
            return
        self._shutdown(McpClosedError("MCP stdio closed"))

    def _handle_body(self, body: bytes) -> None:
        try:
            message = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.debug("Dropping MCP frame with invalid JSON body", data={"bytes": len(body)})
            return
        self._handle_message(message)

    def _handle_message(self, message: Any) -> None:
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0":
            return
        msg_id = message.get("id")
        # Server-initiated requests and notifications are not supported
        if not isinstance(msg_id, int) or isinstance(msg_id, bool):
            return

        entry = self._pending.pop(msg_id, None)
        if entry is None:
            logger.debug("Dropping MCP response with no pending request", data={"id": msg_id})
            return
        entry.timeout_handle.cancel()
        if entry.future.done():
            return

        error = message.get("error")
        if error is not None:
            error_obj = error if isinstance(error, dict) else {}
            text = error_obj.get("message")
            entry.future.set_exception(
                McpRemoteError(
                    text if isinstance(text, str) and text else "MCP request failed",
                    rpc_code=error_obj.get("code"),
                    data=error_obj.get("data"),
                )
            )
            return
        entry.future.set_result(message.get("result"))

    def _on_timeout(self, request_id: int) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is None:
            return
        logger.warning(
            "MCP request timed out",
            data={"id": request_id, "method": entry.method, "timeout_s": self.timeout_seconds},
        )
        if not entry.future.done():
            entry.future.set_exception(McpTimeoutError(entry.method))

    async def _write(self, message: dict[str, Any]) -> None:
        self._writer.write(FrameCodec.encode(message))
        drain = getattr(self._writer, "drain", None)
        if drain is not None:
            await drain()

    async def request(self, method: str, params: Any = None) -> Any:
        """Send a request and wait for its result.

        Raises:
            McpClosedError: If the connection is (or becomes) closed
            McpTimeoutError: If no response arrives in time
            McpRemoteError: If the server answers with an error object
        """
        if self._closed:
            raise McpClosedError()
        self._ensure_reader()

        loop = asyncio.get_running_loop()
        request_id = self._next_id()
        future = loop.create_future()
        handle = loop.call_later(self.timeout_seconds, self._on_timeout, request_id)
        entry = _PendingRequest(method=method, future=future, timeout_handle=handle)
        self._pending[request_id] = entry

        body: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            body["params"] = params

        try:
            try:
                await self._write(body)
            except (OSError, RuntimeError) as exc:
                raise McpClosedError(f"MCP stdio write failed: {exc}") from exc
            return await future
        finally:
            handle.cancel()
            if self._pending.get(request_id) is entry:
                del self._pending[request_id]

    async def notify(self, method: str, params: Any = None) -> None:
        """Fire a notification; a no-op once the connection is closed."""
        if self._closed:
            return
        body: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            body["params"] = params
        await self._write(body)

    def _shutdown(self, error: Exception) -> None:
        if self._closed:
            return
        self._closed = True
        pending = list(self._pending.values())
        self._pending.clear()
        for entry in pending:
            entry.timeout_handle.cancel()
            if not entry.future.done():
                entry.future.set_exception(error)
        self._codec.reset()

    def close(self) -> None:
        self._shutdown(McpClosedError())
        task = self._reader_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()


class McpStdioClient:
    """MCP client for one server process.

    The ``initialize`` handshake runs at most once per instance; concurrent
    first callers share the same in-flight handshake. A failed handshake is
    retried by the next caller.
    """

    def __init__(
        self,
        reader: ByteReader,
        writer: ByteWriter,
        client_info: Optional[dict[str, str]] = None,
        timeout_seconds: Optional[float] = None,
        protocol_version: Optional[str] = None,
    ):
        from aishell.config.settings import get_settings

        settings = get_settings()
        self.connection = McpJsonRpcConnection(reader, writer, timeout_seconds)
        self.client_info = client_info or {
            "name": settings.mcp_client_name,
            "version": settings.mcp_client_version,
        }
        self.protocol_version = protocol_version or settings.mcp_protocol_version
        self.server_info: Optional[dict[str, Any]] = None
        self._init_task: Optional[asyncio.Task] = None

    @classmethod
    def from_process(cls, process: Any, **kwargs: Any) -> "McpStdioClient":
        """Build a client over an ``asyncio.subprocess.Process`` stdout/stdin."""
        return cls(process.stdout, process.stdin, **kwargs)

    @property
    def closed(self) -> bool:
        return self.connection.closed

    async def initialize(self) -> Any:
        if self.connection.closed:
            raise McpClosedError()
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._handshake())
        task = self._init_task
        try:
            return await asyncio.shield(task)
        except Exception:
            if self._init_task is task:
                self._init_task = None
            raise

    async def _handshake(self) -> Any:
        result = await self.connection.request(
            "initialize",
            {
                "protocolVersion": self.protocol_version,
                "capabilities": {},
                "clientInfo": self.client_info,
            },
        )
        if isinstance(result, dict) and isinstance(result.get("serverInfo"), dict):
            self.server_info = result["serverInfo"]
        await self.connection.notify("initialized", {})
        logger.debug("MCP handshake complete", data={"server_info": self.server_info})
        return result

    async def list_tools(self) -> McpToolListResponse:
        await self.initialize()
        result = await self.connection.request("tools/list", {})
        return parse_contract(McpToolListResponse, result)

    async def call_tool(self, name: str, input: Any = None) -> Any:
        await self.initialize()
        params: dict[str, Any] = {"name": name}
        if input is not None:
            params["arguments"] = input
        result = await self.connection.request("tools/call", params)
        if not is_json_value(result):
            raise McpInvalidResponseError("tools/call")
        return result

    def close(self) -> None:
        self.connection.close()
        task = self._init_task
        if task is not None and not task.done():
            task.cancel()
