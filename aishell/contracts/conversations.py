"""Chat messages and the history passed to chat runs."""

from __future__ import annotations

from typing import Literal, Optional

from aishell.contracts.base import ContractModel, NonEmptyStr

AgentMessageRole = Literal["user", "agent", "system"]


class ChatHistoryEntry(ContractModel):
    role: AgentMessageRole
    content: NonEmptyStr
    created_at: Optional[str] = None
