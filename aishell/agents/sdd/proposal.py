"""SDD step outputs as proposals."""

from __future__ import annotations

from aishell.agents.proposal_parsing import proposal_from_patch, proposal_from_record, try_parse_json
from aishell.agents.sdd.paths import SddDocPaths
from aishell.contracts.proposals import Proposal
from aishell.contracts.validate import parse_contract
from aishell.core.exceptions import ModelOutputError

DOC_STEPS = ("spec", "plan", "tasks")


def resolve_target_path(step: str, doc_paths: SddDocPaths) -> str:
    if step == "spec":
        return doc_paths.spec_path
    if step == "plan":
        return doc_paths.plan_path
    return doc_paths.tasks_path


def build_doc_proposal(path: str, content: str) -> Proposal:
    return parse_contract(
        Proposal,
        {"writes": [{"path": path, "content": content}], "summary": {"filesChanged": 1}},
    )


def parse_implementation_output(output: str) -> Proposal:
    """Parse ``implement`` output: a JSON writes/patch object or a raw unified diff."""
    trimmed = output.strip()
    if not trimmed:
        raise ModelOutputError("SDD implement step returned empty output.")

    record = try_parse_json(trimmed)
    if record is not None:
        return proposal_from_record(
            record, ModelOutputError("SDD implement output did not include any writes or patch.")
        )
    return proposal_from_patch(trimmed)
