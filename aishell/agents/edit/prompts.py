"""Prompt construction for edit proposals."""

from __future__ import annotations

from typing import Optional, Sequence

from aishell.agents.attachments import format_attachments
from aishell.contracts.proposals import AgentContextAttachment, AgentEditRequestOptions

EDIT_SYSTEM_PROMPT = (
    "You are a code editing assistant. Return ONLY valid JSON. "
    'Use this shape: { "summary": "short description", "proposal": { "writes": [], "patch": "", '
    '"summary": { "filesChanged": 0, "additions": 0, "deletions": 0 } } }. '
    "Use workspace-relative paths. Use unified diff format for patch output. "
    "Do not apply changes."
)


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


def format_options(options: Optional[AgentEditRequestOptions]) -> str:
    if options is None:
        return "Options: none"
    lines = ["Options:"]
    if options.allow_writes is not None:
        lines.append(f"- allowWrites: {_bool_text(options.allow_writes)}")
    if options.include_tests is not None:
        lines.append(f"- includeTests: {_bool_text(options.include_tests)}")
    if options.max_patch_bytes is not None:
        lines.append(f"- maxPatchBytes: {options.max_patch_bytes}")
    return "Options: none" if len(lines) == 1 else "\n".join(lines)


def build_edit_prompt(
    prompt: str,
    attachments: Sequence[AgentContextAttachment] = (),
    options: Optional[AgentEditRequestOptions] = None,
) -> str:
    return "\n".join(
        [
            f"User request: {prompt}",
            "",
            format_options(options),
            "",
            format_attachments(attachments),
        ]
    )
