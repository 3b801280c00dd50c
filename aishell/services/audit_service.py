"""Tool access audit sink.

Recording is best-effort: a persistence failure is logged and never fails
the tool call path.
"""

from __future__ import annotations

import json
import uuid
from collections import deque
from pathlib import Path
from typing import Callable, Optional, Protocol

from aishell.contracts.base import utc_now_iso
from aishell.contracts.tools import AgentToolAccessAuditEvent
from aishell.core.logging import get_logger

logger = get_logger(__name__)


class AuditLogger(Protocol):
    def log_agent_tool_access(
        self,
        run_id: str,
        tool_id: str,
        requester_id: str,
        allowed: bool,
        reason: Optional[str] = None,
    ) -> None: ...


class AuditService:
    """Keeps recent audit records in memory and optionally appends them to JSONL."""

    def __init__(
        self,
        log_path: Optional[str | Path] = None,
        max_records: int = 1000,
        now: Callable[[], str] = utc_now_iso,
        id_provider: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.log_path = Path(log_path) if log_path else None
        self._records: deque[AgentToolAccessAuditEvent] = deque(maxlen=max_records)
        self._now = now
        self._id_provider = id_provider

    @classmethod
    def from_settings(cls, settings=None) -> "AuditService":
        if settings is None:
            from aishell.config.settings import get_settings

            settings = get_settings()
        return cls(log_path=settings.audit_log_path, max_records=settings.audit_max_records)

    def log_agent_tool_access(
        self,
        run_id: str,
        tool_id: str,
        requester_id: str,
        allowed: bool,
        reason: Optional[str] = None,
    ) -> None:
        """Record one tool access decision."""
        event = AgentToolAccessAuditEvent(
            id=self._id_provider(),
            run_id=run_id,
            tool_id=tool_id,
            requester_id=requester_id,
            allowed=allowed,
            reason=reason,
            created_at=self._now(),
        )
        self._records.append(event)

        logger.info(
            "Tool access %s" % ("allowed" if allowed else "denied"),
            data={"run_id": run_id, "tool_id": tool_id, "requester_id": requester_id, "reason": reason},
        )

        if self.log_path is None:
            return
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with self.log_path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(event.to_wire()) + "\n")
        except OSError:
            # Best-effort: never break the broker path.
            logger.exception("Failed to persist audit record", data={"path": str(self.log_path)})

    def list_events(self, limit: int = 200, cursor: Optional[str] = None) -> dict:
        """Page through records, newest first.

        Returns:
            ``{"events": [...], "nextCursor": str | None}`` where the cursor is
            the offset of the next page.
        """
        ordered = list(reversed(self._records))
        try:
            offset = max(0, int(cursor)) if cursor else 0
        except ValueError:
            offset = 0
        limit = max(1, limit)
        page = ordered[offset : offset + limit]
        next_offset = offset + len(page)
        return {
            "events": page,
            "nextCursor": str(next_offset) if next_offset < len(ordered) else None,
        }

    def records(self) -> list[AgentToolAccessAuditEvent]:
        return list(self._records)
