"""Spec/plan/tasks drafts produced by planning runs."""

from __future__ import annotations

from typing import Literal

from aishell.contracts.base import ContractModel, NonEmptyStr

AgentDraftStatus = Literal["draft", "saved"]


class AgentDraft(ContractModel):
    feature_id: NonEmptyStr
    spec: str
    plan: str
    tasks: str
    status: AgentDraftStatus = "draft"
