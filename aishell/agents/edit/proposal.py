"""Parsing model output into an ``AgentEditProposal``."""

from __future__ import annotations

from typing import Optional

from aishell.agents.proposal_parsing import (
    normalize_model_output,
    proposal_from_patch,
    proposal_from_record,
    try_parse_json,
)
from aishell.contracts.proposals import AgentEditProposal, AgentEditRequestOptions, Proposal
from aishell.core.exceptions import EditProposalError


def build_summary_text(proposal: Proposal) -> str:
    count = proposal.summary.files_changed
    label = "file" if count == 1 else "files"
    return f"Edit proposal ({count} {label})."


def assert_patch_size(patch: str, max_patch_bytes: Optional[int]) -> None:
    """Reject patches larger than ``max_patch_bytes`` UTF-8 bytes; unset or <= 0 disables."""
    if not max_patch_bytes or max_patch_bytes <= 0:
        return
    size = len(patch.encode("utf-8"))
    if size > max_patch_bytes:
        raise EditProposalError(f"Patch exceeds maxPatchBytes ({size} > {max_patch_bytes}).")


def assert_proposal_constraints(proposal: Proposal, options: Optional[AgentEditRequestOptions]) -> None:
    if options is not None and options.allow_writes is False and proposal.writes:
        raise EditProposalError("Edit proposal included writes but allowWrites is false.")
    if proposal.patch:
        assert_patch_size(proposal.patch, options.max_patch_bytes if options else None)


def parse_edit_proposal_output(
    text: str,
    options: Optional[AgentEditRequestOptions] = None,
) -> AgentEditProposal:
    """Parse JSON-shaped output first, then fall back to a raw patch."""
    normalized = normalize_model_output(text)

    record = try_parse_json(normalized)
    if record is not None:
        candidate = record
        if isinstance(record, dict) and record.get("proposal") is not None:
            candidate = record["proposal"]
        if not isinstance(candidate, (dict, list)):
            raise EditProposalError("Edit output must include a proposal object.")
        proposal = proposal_from_record(
            candidate, EditProposalError("Edit proposal did not include any writes or patch.")
        )
        assert_proposal_constraints(proposal, options)

        summary_text = record.get("summary") if isinstance(record, dict) else None
        if not isinstance(summary_text, str) or not summary_text.strip():
            summary_text = build_summary_text(proposal)
        return AgentEditProposal(summary=summary_text.strip(), proposal=proposal)

    patch = normalized.strip()
    if not patch:
        raise EditProposalError("Edit output was empty.")
    assert_patch_size(patch, options.max_patch_bytes if options else None)
    proposal = proposal_from_patch(patch)
    assert_proposal_constraints(proposal, options)
    return AgentEditProposal(summary=build_summary_text(proposal), proposal=proposal)
