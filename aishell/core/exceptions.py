"""Exception hierarchy for the agent core."""

from typing import Any, Dict, List, Optional


class AgentCoreError(Exception):
    """Base exception for the agent core."""

    def __init__(
        self,
        message: str,
        code: str = "E5000",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


# Protocol errors


class ContractValidationError(AgentCoreError):
    """A message failed validation at its contract boundary."""

    def __init__(self, contract: str, errors: Optional[List[str]] = None):
        self.contract = contract
        self.errors = errors or []
        summary = "; ".join(self.errors) if self.errors else "invalid payload"
        super().__init__(
            f"Invalid {contract}: {summary}",
            code="E1000",
            details={"contract": contract, "errors": self.errors},
        )


# Tool handler errors


class ToolInputError(AgentCoreError):
    """Tool input rejected by the tool's input schema."""

    def __init__(self, tool_id: str, message: str = "Tool input failed validation"):
        super().__init__(f"{message}: {tool_id}", code="E1100", details={"tool_id": tool_id})


class InvalidToolOutputError(AgentCoreError):
    """Tool output rejected by the tool's output schema or not JSON."""

    def __init__(self, tool_id: str, message: str = "Tool output failed validation"):
        super().__init__(f"{message}: {tool_id}", code="E1101", details={"tool_id": tool_id})


# Broker boundary errors


class DuplicateCallError(AgentCoreError):
    """A tool call id is already in flight."""

    def __init__(self, call_id: str):
        super().__init__(f"Duplicate tool call id: {call_id}", code="E1200", details={"call_id": call_id})


class ToolCallTimeoutError(AgentCoreError):
    """No tool result arrived in time."""

    def __init__(self, call_id: str):
        super().__init__(f"Tool call timed out: {call_id}", code="E1201", details={"call_id": call_id})


class BrokerClientDisposedError(AgentCoreError):
    def __init__(self, call_id: str):
        super().__init__(
            f"BrokerClient disposed before completion: {call_id}",
            code="E1202",
            details={"call_id": call_id},
        )


# Run-level errors


class RunError(AgentCoreError):
    """A workflow run failed."""

    def __init__(self, message: str, code: str = "E2000", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class RunIdMismatchError(RunError):
    def __init__(self, run_id: str):
        super().__init__(f"Tool call runId mismatch: {run_id}", code="E2001", details={"run_id": run_id})


class ToolCallFailedError(RunError):
    """A tool call in a run returned ``ok=false``."""

    def __init__(self, message: str, tool_id: Optional[str] = None):
        super().__init__(message, code="E2002", details={"tool_id": tool_id} if tool_id else {})


class ModelOutputError(RunError):
    """``model.generate`` returned output the runner cannot use."""

    def __init__(self, message: str):
        super().__init__(message, code="E2003")


class EditProposalError(RunError):
    """Model output could not be turned into a valid edit proposal."""

    def __init__(self, message: str):
        super().__init__(message, code="E2004")


class SddContextError(RunError):
    """Mandatory SDD context files are missing."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message, code="E2100", details={"missing": missing or []})


class SddAlignmentError(RunError):
    """SDD documents lack the constitution alignment marker."""

    def __init__(self, message: str, files: Optional[List[str]] = None):
        super().__init__(message, code="E2101", details={"files": files or []})


class SddStepGateError(RunError):
    """An SDD step was requested before its prerequisite documents exist."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message, code="E2102", details={"missing": missing or []})


class SddRunCanceledError(RunError):
    """Raised at a cancellation checkpoint."""

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason
        message = f"SDD run canceled: {reason}" if reason else "SDD run canceled."
        super().__init__(message, code="E2199")


# MCP errors


class McpError(AgentCoreError):
    """Base MCP transport error."""

    def __init__(self, message: str, code: str = "E3000", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class McpClosedError(McpError):
    def __init__(self, message: str = "MCP client is closed"):
        super().__init__(message, code="E3001")


class McpTimeoutError(McpError):
    def __init__(self, method: str):
        self.method = method
        super().__init__(f"MCP request timeout: {method}", code="E3002", details={"method": method})


class McpRemoteError(McpError):
    """The server answered a request with a JSON-RPC error object."""

    def __init__(self, message: str, rpc_code: Optional[int] = None, data: Any = None):
        self.rpc_code = rpc_code
        self.data = data
        super().__init__(message, code="E3003", details={"rpc_code": rpc_code})


class McpServerNotFoundError(McpError):
    def __init__(self, server_key: str):
        super().__init__(f"MCP server not found: {server_key}", code="E3004", details={"server": server_key})


class McpServerNotRunningError(McpError):
    def __init__(self, server_key: str):
        super().__init__(f"MCP server is not running: {server_key}", code="E3005", details={"server": server_key})


class McpInvalidResponseError(McpError):
    """A response body that does not survive a JSON round trip (NaN, Infinity)."""

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"MCP response is not valid JSON: {method}", code="E3006", details={"method": method})
