"""Tests for the tool access audit sink."""

import json

from aishell.services.audit_service import AuditService

from conftest import new_id


def _log(service: AuditService, tool_id: str = "demo.echo", allowed: bool = True, reason=None) -> None:
    service.log_agent_tool_access(
        run_id=new_id(), tool_id=tool_id, requester_id="agent-host", allowed=allowed, reason=reason
    )


class TestAuditService:
    """Tests for AuditService."""

    def test_records_kept_in_memory(self):
        service = AuditService()
        _log(service, allowed=False, reason="Tool denied by policy.")
        [record] = service.records()
        assert record.type == "agent-tool-access"
        assert record.allowed is False
        assert record.reason == "Tool denied by policy."

    def test_bounded_history(self):
        """Only the most recent records are kept."""
        service = AuditService(max_records=2)
        for tool_id in ("a", "b", "c"):
            _log(service, tool_id=tool_id)
        assert [r.tool_id for r in service.records()] == ["b", "c"]

    def test_list_events_newest_first_with_cursor(self):
        service = AuditService()
        for tool_id in ("a", "b", "c"):
            _log(service, tool_id=tool_id)

        first = service.list_events(limit=2)
        assert [e.tool_id for e in first["events"]] == ["c", "b"]
        assert first["nextCursor"] == "2"

        second = service.list_events(limit=2, cursor=first["nextCursor"])
        assert [e.tool_id for e in second["events"]] == ["a"]
        assert second["nextCursor"] is None

    def test_invalid_cursor_starts_over(self):
        service = AuditService()
        _log(service)
        assert len(service.list_events(cursor="nope")["events"]) == 1

    def test_jsonl_persistence(self, tmp_path):
        """Records are appended to the JSONL file in wire format."""
        path = tmp_path / "audit" / "tool-access.jsonl"
        service = AuditService(log_path=path)
        _log(service, tool_id="a")
        _log(service, tool_id="b", allowed=False)

        lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        assert [line["toolId"] for line in lines] == ["a", "b"]
        assert lines[1]["allowed"] is False
        assert "createdAt" in lines[0]

    def test_persistence_failure_does_not_raise(self, tmp_path):
        """An unwritable log path is logged, not raised."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory", encoding="utf-8")
        service = AuditService(log_path=blocker / "audit.jsonl")
        _log(service)
        assert len(service.records()) == 1
