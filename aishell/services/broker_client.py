"""Tool executor boundary between workflow runners and the tool broker.

Runners only see ``ToolExecutor.execute_tool_call``. ``LocalToolExecutor``
calls a broker in the same process; ``BrokerClient`` sends envelopes over a
message transport to a ``ToolCallHandler`` that owns the broker.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional, Protocol

from aishell.contracts.tools import AgentPolicyConfig, ToolCallEnvelope, ToolCallResult
from aishell.contracts.validate import parse_contract
from aishell.core.exceptions import (
    BrokerClientDisposedError,
    ContractValidationError,
    DuplicateCallError,
    ToolCallTimeoutError,
)
from aishell.core.logging import get_logger
from aishell.services.tool_broker import ToolBroker

if TYPE_CHECKING:
    from aishell.mcp.tool_bridge import McpToolBridge

logger = get_logger(__name__)

TOOL_CALL_MESSAGE = "agent-host:tool-call"
TOOL_RESULT_MESSAGE = "agent-host:tool-result"

MessageHandler = Callable[[Any], None]


class ToolExecutor(Protocol):
    async def execute_tool_call(self, envelope: ToolCallEnvelope) -> ToolCallResult: ...


class MessageTransport(Protocol):
    def send(self, message: dict[str, Any]) -> None: ...

    def on_message(self, handler: MessageHandler) -> Callable[[], None]: ...


class LocalToolExecutor:
    """Executes tool calls directly against an in-process broker."""

    def __init__(self, broker: ToolBroker, run_policy_override: Optional[AgentPolicyConfig] = None):
        self.broker = broker
        self.run_policy_override = run_policy_override

    async def execute_tool_call(self, envelope: ToolCallEnvelope) -> ToolCallResult:
        return await self.broker.handle_agent_tool_call(envelope, self.run_policy_override)


@dataclass
class _PendingCall:
    future: asyncio.Future
    timeout_handle: asyncio.TimerHandle


class BrokerClient:
    """Correlates tool-call messages with tool-result messages by ``callId``."""

    def __init__(self, transport: MessageTransport, timeout_seconds: Optional[float] = None):
        if timeout_seconds is None:
            from aishell.config.settings import get_settings

            timeout_seconds = get_settings().broker_call_timeout_seconds
        self.transport = transport
        self.timeout_seconds = timeout_seconds
        self._pending: dict[str, _PendingCall] = {}
        self._disposed = False
        self._unsubscribe = transport.on_message(self._handle_message)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def execute_tool_call(self, envelope: ToolCallEnvelope | dict) -> ToolCallResult:
        """Send one envelope and wait for its result.

        Raises:
            ContractValidationError: If the envelope is malformed
            DuplicateCallError: If a call with the same id is in flight
            ToolCallTimeoutError: If no result arrives in time
            BrokerClientDisposedError: If the client is disposed meanwhile
        """
        validated = parse_contract(ToolCallEnvelope, envelope)
        call_id = validated.call_id
        if self._disposed:
            raise BrokerClientDisposedError(call_id)
        if call_id in self._pending:
            raise DuplicateCallError(call_id)

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        handle = loop.call_later(self.timeout_seconds, self._on_timeout, call_id)
        entry = _PendingCall(future=future, timeout_handle=handle)
        self._pending[call_id] = entry

        try:
            self.transport.send({"type": TOOL_CALL_MESSAGE, "payload": validated.to_wire()})
            return await future
        finally:
            handle.cancel()
            if self._pending.get(call_id) is entry:
                del self._pending[call_id]

    def dispose(self) -> None:
        """Stop listening and reject every pending call."""
        if self._disposed:
            return
        self._disposed = True
        self._unsubscribe()
        pending = list(self._pending.items())
        self._pending.clear()
        for call_id, entry in pending:
            entry.timeout_handle.cancel()
            if not entry.future.done():
                entry.future.set_exception(BrokerClientDisposedError(call_id))

    def _on_timeout(self, call_id: str) -> None:
        entry = self._pending.pop(call_id, None)
        if entry is None:
            return
        logger.warning("Tool call timed out", data={"call_id": call_id, "timeout_s": self.timeout_seconds})
        if not entry.future.done():
            entry.future.set_exception(ToolCallTimeoutError(call_id))

    def _handle_message(self, message: Any) -> None:
        if not isinstance(message, dict) or message.get("type") != TOOL_RESULT_MESSAGE:
            return
        payload = message.get("payload")
        try:
            result = parse_contract(ToolCallResult, payload)
        except ContractValidationError as exc:
            call_id = payload.get("callId") if isinstance(payload, dict) else None
            entry = self._pending.pop(call_id, None) if isinstance(call_id, str) else None
            logger.warning("Invalid tool result payload", data={"call_id": call_id, "errors": exc.errors})
            if entry is not None:
                entry.timeout_handle.cancel()
                if not entry.future.done():
                    entry.future.set_exception(exc)
            return

        entry = self._pending.pop(result.call_id, None)
        if entry is None:
            logger.debug("Dropping tool result for unknown call", data={"call_id": result.call_id})
            return
        entry.timeout_handle.cancel()
        if not entry.future.done():
            entry.future.set_result(result)


class ToolCallHandler:
    """Broker-side endpoint: runs incoming tool calls and replies with results."""

    def __init__(
        self,
        broker: ToolBroker,
        transport: MessageTransport,
        mcp_bridge: Optional["McpToolBridge"] = None,
    ):
        self.broker = broker
        self.transport = transport
        self.mcp_bridge = mcp_bridge
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe = transport.on_message(self._on_message)

    def _on_message(self, message: Any) -> None:
        if not isinstance(message, dict) or message.get("type") != TOOL_CALL_MESSAGE:
            return
        task = asyncio.ensure_future(self.handle(message.get("payload")))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle(self, payload: Any) -> Optional[ToolCallResult]:
        try:
            envelope = parse_contract(ToolCallEnvelope, payload)
        except ContractValidationError as exc:
            # Nothing to correlate a reply with; the client times out.
            logger.warning("Dropping malformed tool call", data={"errors": exc.errors})
            return None

        if self.mcp_bridge is not None and self.mcp_bridge.is_mcp_tool(envelope.tool_id):
            try:
                await self.mcp_bridge.ensure_tool_registered(envelope.tool_id)
            except Exception:
                # Broker reports TOOL_NOT_FOUND when registration did not happen
                logger.warning("MCP tool registration failed", data={"tool_id": envelope.tool_id}, exc_info=True)

        result = await self.broker.handle_agent_tool_call(envelope)
        self.transport.send({"type": TOOL_RESULT_MESSAGE, "payload": result.to_wire()})
        return result

    def close(self) -> None:
        self._unsubscribe()
        for task in list(self._tasks):
            task.cancel()


class LoopbackTransport:
    """In-process transport end; messages are JSON round-tripped and delivered on the next loop tick."""

    def __init__(self) -> None:
        self.peer: Optional[LoopbackTransport] = None
        self._handlers: list[MessageHandler] = []

    @classmethod
    def pair(cls) -> tuple["LoopbackTransport", "LoopbackTransport"]:
        left, right = cls(), cls()
        left.peer, right.peer = right, left
        return left, right

    def send(self, message: dict[str, Any]) -> None:
        if self.peer is None:
            raise RuntimeError("LoopbackTransport is not connected")
        wire = json.loads(json.dumps(message))
        asyncio.get_running_loop().call_soon(self.peer._deliver, wire)

    def on_message(self, handler: MessageHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass

        return unsubscribe

    def _deliver(self, message: Any) -> None:
        for handler in list(self._handlers):
            handler(message)
