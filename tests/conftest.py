"""Shared fixtures and fakes for agent core tests."""

from __future__ import annotations

import asyncio
import os
import uuid
from typing import Any, Callable, Optional

import pytest

from aishell.contracts.tools import ToolCallEnvelope, ToolCallResult
from aishell.mcp.framing import FrameCodec


def pytest_configure(config):
    """Configure the test environment before any test module imports settings."""
    config.addinivalue_line("markers", "mcp: MCP transport and bridge tests")
    config.addinivalue_line("markers", "security: Redaction and policy tests")

    os.environ.setdefault("AISHELL_ENVIRONMENT", "test")
    os.environ.setdefault("AISHELL_MCP_REQUEST_TIMEOUT_SECONDS", "1")
    os.environ.setdefault("AISHELL_BROKER_CALL_TIMEOUT_SECONDS", "1")


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    from aishell.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def new_id() -> str:
    return str(uuid.uuid4())


def make_envelope(tool_id: str = "demo.echo", run_id: Optional[str] = None, **overrides: Any) -> ToolCallEnvelope:
    fields = {
        "call_id": new_id(),
        "tool_id": tool_id,
        "requester_id": "agent-host",
        "run_id": run_id or new_id(),
        "input": {"value": 1},
    }
    fields.update(overrides)
    return ToolCallEnvelope(**fields)


def ok_result(envelope: ToolCallEnvelope, output: Any = None, duration_ms: int = 1) -> ToolCallResult:
    return ToolCallResult(
        call_id=envelope.call_id,
        tool_id=envelope.tool_id,
        run_id=envelope.run_id,
        ok=True,
        output=output,
        duration_ms=duration_ms,
    )


def error_result(envelope: ToolCallEnvelope, error: str = "TOOL_EXECUTION_FAILED") -> ToolCallResult:
    return ToolCallResult(
        call_id=envelope.call_id,
        tool_id=envelope.tool_id,
        run_id=envelope.run_id,
        ok=False,
        error=error,
        duration_ms=0,
    )


class RecordingAudit:
    """Audit logger double that keeps every call."""

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    def log_agent_tool_access(self, run_id, tool_id, requester_id, allowed, reason=None) -> None:
        self.records.append(
            {"run_id": run_id, "tool_id": tool_id, "requester_id": requester_id, "allowed": allowed, "reason": reason}
        )


class ScriptedExecutor:
    """Tool executor answering from per-tool responders.

    A responder receives the envelope and returns either a ``ToolCallResult``
    or a raw output that is wrapped as a successful result.
    """

    def __init__(self, responders: Optional[dict[str, Callable[[ToolCallEnvelope], Any]]] = None):
        self.responders = responders or {}
        self.calls: list[ToolCallEnvelope] = []

    async def execute_tool_call(self, envelope: ToolCallEnvelope) -> ToolCallResult:
        self.calls.append(envelope)
        responder = self.responders.get(envelope.tool_id)
        if responder is None:
            return error_result(envelope, "TOOL_NOT_FOUND")
        value = responder(envelope)
        if isinstance(value, ToolCallResult):
            return value
        return ok_result(envelope, value)


class FakeReader:
    """Byte reader fed by the test; ``feed_eof`` ends the stream."""

    def __init__(self) -> None:
        self._chunks: asyncio.Queue = asyncio.Queue()

    def feed(self, data: bytes) -> None:
        self._chunks.put_nowait(data)

    def feed_eof(self) -> None:
        self._chunks.put_nowait(b"")

    async def read(self, n: int = -1) -> bytes:
        return await self._chunks.get()


class FakeWriter:
    """Collects written frames and decodes them as JSON-RPC messages."""

    def __init__(self) -> None:
        self._codec = FrameCodec()
        self.messages: list[dict[str, Any]] = []
        self.on_message: Optional[Callable[[dict[str, Any]], None]] = None

    def write(self, data: bytes) -> None:
        import json

        for body in self._codec.feed(data):
            message = json.loads(body)
            self.messages.append(message)
            if self.on_message is not None:
                self.on_message(message)

    async def drain(self) -> None:
        return None


def respond(reader: FakeReader, request_id: int, result: Any = None, error: Any = None) -> None:
    message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id}
    if error is not None:
        message["error"] = error
    else:
        message["result"] = result
    reader.feed(FrameCodec.encode(message))


class FakeMcpServer:
    """Answers ``initialize``, ``tools/list`` and ``tools/call`` over fake streams."""

    def __init__(self, tools: Optional[list[dict[str, Any]]] = None, call_result: Any = None):
        self.reader = FakeReader()
        self.writer = FakeWriter()
        self.tools = tools or []
        self.call_result = call_result if call_result is not None else {"content": [{"type": "text", "text": "ok"}]}
        self.calls: list[dict[str, Any]] = []
        self.writer.on_message = self._handle

    def _handle(self, message: dict[str, Any]) -> None:
        method = message.get("method")
        if "id" not in message:
            return
        if method == "initialize":
            respond(self.reader, message["id"], {"protocolVersion": "2024-11-05", "serverInfo": {"name": "fake"}})
        elif method == "tools/list":
            respond(self.reader, message["id"], {"tools": self.tools})
        elif method == "tools/call":
            self.calls.append(message["params"])
            respond(self.reader, message["id"], self.call_result)


class FakeProcess:
    """Stand-in for ``asyncio.subprocess.Process``."""

    def __init__(self, server: Optional[FakeMcpServer] = None):
        self.server = server or FakeMcpServer()
        self.stdout = self.server.reader
        self.stdin = self.server.writer
        self.stderr = None
        self.returncode: Optional[int] = None
        self.terminated = False
        self.killed = False
        self._exited = asyncio.Event()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def exit(self, code: int) -> None:
        self.returncode = code
        self._exited.set()

    def terminate(self) -> None:
        self.terminated = True
        self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)


class EventCollector:
    def __init__(self) -> None:
        self.events: list[Any] = []

    def __call__(self, event: Any) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [event.type for event in self.events]

    @property
    def statuses(self) -> list[str]:
        return [event.status for event in self.events if event.type == "status"]


@pytest.fixture
def run_id() -> str:
    return new_id()


@pytest.fixture
def collector() -> EventCollector:
    return EventCollector()
