"""Tests for the run event emitter."""

import asyncio

import pytest

from aishell.contracts.events import LogEvent, StatusEvent
from aishell.core.exceptions import ContractValidationError
from aishell.services.run_events import RunEventEmitter

from conftest import new_id


def status(run_id: str, value: str = "running") -> StatusEvent:
    return StatusEvent(id=new_id(), run_id=run_id, timestamp="2026-01-01T00:00:00.000Z", status=value)


class TestRunEventEmitter:
    """Tests for RunEventEmitter."""

    def test_emit_keeps_per_run_order(self, run_id):
        emitter = RunEventEmitter(backlog_size=10)
        other_run = new_id()
        emitter.emit(status(run_id, "running"))
        emitter.emit(status(other_run, "running"))
        emitter.emit(status(run_id, "completed"))

        assert [e.status for e in emitter.events_for(run_id)] == ["running", "completed"]
        assert len(emitter.events_for(other_run)) == 1

    def test_emit_validates_wire_dicts(self, run_id):
        emitter = RunEventEmitter(backlog_size=10)
        event = emitter.emit(
            {"id": new_id(), "runId": run_id, "timestamp": "t", "type": "log", "level": "info", "message": "hi"}
        )
        assert isinstance(event, LogEvent)

    def test_emit_rejects_invalid_events(self, run_id):
        emitter = RunEventEmitter(backlog_size=10)
        with pytest.raises(ContractValidationError):
            emitter.emit({"id": new_id(), "runId": run_id, "timestamp": "t", "type": "status", "status": "bogus"})
        assert emitter.events_for(run_id) == []

    def test_backlog_is_bounded(self, run_id):
        emitter = RunEventEmitter(backlog_size=2)
        for value in ("queued", "running", "completed"):
            emitter.emit(status(run_id, value))
        assert [e.status for e in emitter.events_for(run_id)] == ["running", "completed"]

    def test_listeners_in_order_and_removable(self, run_id):
        emitter = RunEventEmitter(backlog_size=10)
        seen = []
        remove_first = emitter.add_listener(lambda event: seen.append(("first", event.status)))
        emitter.add_listener(lambda event: seen.append(("second", event.status)))

        emitter.emit(status(run_id, "running"))
        remove_first()
        remove_first()
        emitter.emit(status(run_id, "completed"))

        assert seen == [("first", "running"), ("second", "running"), ("second", "completed")]

    def test_listener_errors_propagate(self, run_id):
        emitter = RunEventEmitter(backlog_size=10)

        def broken(event):
            raise RuntimeError("listener failed")

        emitter.add_listener(broken)
        with pytest.raises(RuntimeError):
            emitter.emit(status(run_id))

    def test_retained_runs_capped(self):
        """Only the most recently active runs keep a backlog."""
        emitter = RunEventEmitter(backlog_size=10, max_runs=3)
        runs = [new_id() for _ in range(50)]
        for each in runs:
            emitter.emit(status(each, "running"))
            emitter.emit(status(each, "completed"))

        assert emitter.retained_runs == 3
        assert emitter.events_for(runs[0]) == []
        assert [e.status for e in emitter.events_for(runs[-1])] == ["running", "completed"]

    def test_recent_activity_keeps_run(self):
        emitter = RunEventEmitter(backlog_size=10, max_runs=2)
        first, second, third = new_id(), new_id(), new_id()
        emitter.emit(status(first))
        emitter.emit(status(second))
        emitter.emit(status(first, "completed"))
        emitter.emit(status(third))

        assert len(emitter.events_for(first)) == 2
        assert emitter.events_for(second) == []

    def test_clear(self, run_id):
        emitter = RunEventEmitter(backlog_size=10)
        emitter.emit(status(run_id))
        emitter.clear(run_id)
        assert emitter.events_for(run_id) == []

    @pytest.mark.asyncio
    async def test_subscribe_replays_after_id_then_live(self, run_id):
        emitter = RunEventEmitter(backlog_size=10)
        first = emitter.emit(status(run_id, "queued"))
        emitter.emit(status(run_id, "running"))

        stream = emitter.subscribe(run_id, after_id=first.id)
        replayed = await asyncio.wait_for(stream.__anext__(), timeout=1)
        assert replayed.status == "running"

        emitter.emit(status(run_id, "completed"))
        live = await asyncio.wait_for(stream.__anext__(), timeout=1)
        assert live.status == "completed"
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_subscribe_without_after_id_is_live_only(self, run_id):
        emitter = RunEventEmitter(backlog_size=10)
        emitter.emit(status(run_id, "queued"))

        stream = emitter.subscribe(run_id)
        pending = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)
        emitter.emit(status(run_id, "running"))
        event = await asyncio.wait_for(pending, timeout=1)
        assert event.status == "running"
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_subscribed_run_not_evicted(self, run_id):
        emitter = RunEventEmitter(backlog_size=10, max_runs=1)
        emitter.emit(status(run_id, "queued"))
        stream = emitter.subscribe(run_id)
        pending = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)

        emitter.emit(status(new_id()))

        assert len(emitter.events_for(run_id)) == 1
        emitter.emit(status(run_id, "running"))
        assert (await asyncio.wait_for(pending, timeout=1)).status == "running"
        await stream.aclose()
