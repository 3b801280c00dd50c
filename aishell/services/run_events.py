"""Run event emitter with bounded per-run backlog and asyncio broadcast."""

from __future__ import annotations

import asyncio
from collections import OrderedDict, defaultdict, deque
from typing import Any, AsyncIterator, Callable, Optional

from aishell.contracts.events import RunEvent, run_event_adapter
from aishell.contracts.validate import parse_contract
from aishell.core.logging import get_logger

logger = get_logger(__name__)

EventListener = Callable[[Any], None]


class RunEventEmitter:
    """Validated, ordered, append-only event sink shared by workflow runners.

    ``emit`` is synchronous: the event is validated, appended to its run's
    backlog and handed to listeners in registration order before ``emit``
    returns, so per-run order is exactly the order runners emit in.
    Listener exceptions propagate to the emitting runner.

    Backlogs are kept for at most ``max_runs`` runs. When a new run pushes
    past the cap, the least recently emitted-to run without live subscribers
    loses its backlog.
    """

    def __init__(self, backlog_size: Optional[int] = None, max_runs: Optional[int] = None):
        if backlog_size is None or max_runs is None:
            from aishell.config.settings import get_settings

            settings = get_settings()
            if backlog_size is None:
                backlog_size = settings.event_backlog_size
            if max_runs is None:
                max_runs = settings.event_max_runs
        self._backlog_size = backlog_size
        self._max_runs = max_runs
        self._backlogs: OrderedDict[str, deque] = OrderedDict()
        self._listeners: list[EventListener] = []
        self._subscribers: dict[str, list[asyncio.Queue]] = defaultdict(list)

    def emit(self, event: Any) -> RunEvent:
        validated = parse_contract(run_event_adapter, event, name="RunEvent")
        run_id = validated.run_id
        self._backlog(run_id).append(validated)

        for listener in list(self._listeners):
            listener(validated)

        for q in self._subscribers.get(run_id, ()):
            try:
                q.put_nowait(validated)
            except asyncio.QueueFull:
                # slow consumer drops events; they can replay from the backlog
                logger.warning("Run event subscriber queue full", data={"run_id": run_id})
        return validated

    def _backlog(self, run_id: str) -> deque:
        backlog = self._backlogs.get(run_id)
        if backlog is not None:
            self._backlogs.move_to_end(run_id)
            return backlog
        backlog = self._backlogs[run_id] = deque(maxlen=self._backlog_size)
        if len(self._backlogs) > self._max_runs:
            self._evict()
        return backlog

    def _evict(self) -> None:
        for stale in list(self._backlogs)[:-1]:
            if stale not in self._subscribers:
                del self._backlogs[stale]
                logger.debug("Evicted run event backlog", data={"run_id": stale})
                return

    @property
    def retained_runs(self) -> int:
        return len(self._backlogs)

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        """Register a synchronous listener; returns a function removing it."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return remove

    def events_for(self, run_id: str) -> list[RunEvent]:
        return list(self._backlogs.get(run_id, ()))

    def clear(self, run_id: str) -> None:
        self._backlogs.pop(run_id, None)

    async def subscribe(self, run_id: str, after_id: Optional[str] = None) -> AsyncIterator[RunEvent]:
        """Yield events from backlog (if after_id given) then live events."""
        q: asyncio.Queue = asyncio.Queue(maxsize=256)

        # Snapshot and register together: emit() never awaits, so nothing lands in between.
        snapshot = list(self._backlogs.get(run_id, ())) if after_id is not None else []
        self._subscribers[run_id].append(q)

        try:
            found = False
            for ev in snapshot:
                if found:
                    yield ev
                elif ev.id == after_id:
                    found = True
            # If after_id is not in the backlog, only live events follow
            while True:
                yield await q.get()
        finally:
            try:
                self._subscribers[run_id].remove(q)
            except ValueError:
                pass
            if not self._subscribers[run_id]:
                self._subscribers.pop(run_id, None)
