"""Edit proposals and edit request inputs."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from aishell.contracts.base import ContractModel, NonEmptyStr


class ProposalWrite(ContractModel):
    path: NonEmptyStr
    content: str


class ProposalSummary(ContractModel):
    files_changed: int = Field(ge=0)
    additions: Optional[int] = Field(default=None, ge=0)
    deletions: Optional[int] = Field(default=None, ge=0)


class Proposal(ContractModel):
    writes: list[ProposalWrite] = Field(default_factory=list)
    patch: Optional[str] = None
    summary: ProposalSummary


class AgentEditProposal(ContractModel):
    summary: NonEmptyStr
    proposal: Proposal


class AgentTextRange(ContractModel):
    start_line_number: int = Field(ge=1)
    start_column: int = Field(ge=1)
    end_line_number: int = Field(ge=1)
    end_column: int = Field(ge=1)


class AgentContextAttachment(ContractModel):
    kind: Literal["file", "selection", "snippet"]
    file_path: NonEmptyStr
    range: Optional[AgentTextRange] = None
    snippet: Optional[str] = None
    hash: Optional[str] = None


class AgentEditRequestOptions(ContractModel):
    allow_writes: Optional[bool] = None
    include_tests: Optional[bool] = None
    max_patch_bytes: Optional[int] = Field(default=None, ge=1)
