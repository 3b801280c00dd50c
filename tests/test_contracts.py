"""Tests for wire contracts and the validation boundary."""

import math

import pytest

from aishell.contracts import (
    AgentRunStartRequest,
    ToolCallEnvelope,
    ToolCallResult,
    parse_contract,
)
from aishell.contracts.base import is_json_value, is_uuid
from aishell.contracts.events import StatusEvent, run_event_adapter, sdd_event_adapter
from aishell.contracts.mcp import McpToolListResponse
from aishell.contracts.validate import is_valid_contract
from aishell.core.exceptions import ContractValidationError

from conftest import make_envelope, new_id


class TestPrimitives:
    """Tests for UUID and JSON value checks."""

    def test_uuid(self):
        assert is_uuid(new_id())
        assert not is_uuid("not-a-uuid")
        assert not is_uuid(None)

    def test_json_value(self):
        """Only values that survive a JSON round trip are accepted."""
        assert is_json_value({"a": [1, 2.5, None, True, "x"]})
        assert not is_json_value({"a": math.nan})
        assert not is_json_value({1: "int key"})
        assert not is_json_value({"a": object()})
        assert not is_json_value((1, 2))


class TestToolCallContracts:
    """Tests for envelopes and results."""

    def test_envelope_wire_round_trip(self):
        """Envelopes serialize with camelCase keys and parse back."""
        envelope = make_envelope(reason="because")
        wire = envelope.to_wire()
        assert set(wire) == {"callId", "toolId", "requesterId", "runId", "input", "reason"}
        assert parse_contract(ToolCallEnvelope, wire) == envelope

    def test_envelope_is_frozen(self):
        envelope = make_envelope()
        with pytest.raises(Exception):
            envelope.tool_id = "other"

    def test_envelope_rejects_bad_ids(self):
        """Malformed envelopes raise ContractValidationError naming the contract."""
        with pytest.raises(ContractValidationError) as exc_info:
            parse_contract(
                ToolCallEnvelope,
                {"callId": "x", "toolId": "t", "requesterId": "r", "runId": new_id()},
            )
        assert exc_info.value.contract == "ToolCallEnvelope"
        assert any("callId" in err for err in exc_info.value.errors)

    def test_unknown_keys_dropped(self):
        """Fields added by newer peers are accepted and left out of the model."""
        wire = {**make_envelope().to_wire(), "traceId": "abc"}
        envelope = parse_contract(ToolCallEnvelope, wire)
        assert "traceId" not in envelope.to_wire()
        result = parse_contract(
            ToolCallResult,
            {"callId": new_id(), "toolId": "t", "runId": new_id(), "ok": True, "durationMs": 3, "meta": {"host": "a"}},
        )
        assert result.duration_ms == 3

    def test_envelope_rejects_empty_tool_id(self):
        assert not is_valid_contract(
            ToolCallEnvelope,
            {"callId": new_id(), "toolId": "", "requesterId": "r", "runId": new_id()},
        )

    def test_result_outcome_exclusivity(self):
        """Output is only allowed on success and error only on failure."""
        base = {"callId": new_id(), "toolId": "t", "runId": new_id(), "durationMs": 0}
        assert is_valid_contract(ToolCallResult, {**base, "ok": True, "output": {"x": 1}})
        assert is_valid_contract(ToolCallResult, {**base, "ok": False, "error": "TOOL_NOT_FOUND"})
        assert not is_valid_contract(ToolCallResult, {**base, "ok": True, "error": "boom"})
        assert not is_valid_contract(ToolCallResult, {**base, "ok": False, "output": 1})

    def test_result_rejects_negative_duration(self):
        base = {"callId": new_id(), "toolId": "t", "runId": new_id(), "ok": True}
        assert not is_valid_contract(ToolCallResult, {**base, "durationMs": -1})


class TestRunContracts:
    """Tests for run requests and events."""

    def test_start_request_requires_goal(self):
        assert not is_valid_contract(AgentRunStartRequest, {"goal": ""})
        assert is_valid_contract(AgentRunStartRequest, {"goal": "fix", "config": {"modelRef": "m"}})

    def test_run_event_discriminator(self):
        """Events of both workflows validate through the shared union."""
        status = run_event_adapter.validate_python(
            {"id": new_id(), "runId": new_id(), "timestamp": "t", "type": "status", "status": "running"}
        )
        assert isinstance(status, StatusEvent)
        canceled = run_event_adapter.validate_python(
            {"id": new_id(), "runId": new_id(), "timestamp": "t", "type": "runCanceled", "reason": "user"}
        )
        assert canceled.reason == "user"

    def test_sdd_union_rejects_agent_events(self):
        with pytest.raises(Exception):
            sdd_event_adapter.validate_python(
                {"id": new_id(), "runId": new_id(), "timestamp": "t", "type": "status", "status": "running"}
            )

    def test_mcp_tool_list_ignores_unknown_fields(self):
        """Servers may advertise fields this client does not know."""
        response = McpToolListResponse.model_validate(
            {"tools": [{"name": "search", "inputSchema": {"type": "object"}, "annotations": {}}], "nextCursor": None}
        )
        assert response.tools[0].input_schema == {"type": "object"}
