"""Context attachments and conversation ids carried in run ``inputs``.

Shared by the edit and chat workflows. Attachments are rendered into the
prompt under a per-snippet and a total character budget.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from aishell.contracts.base import is_uuid
from aishell.contracts.proposals import AgentContextAttachment, AgentTextRange
from aishell.contracts.runs import AgentRunStartRequest
from aishell.core.logging import get_logger

logger = get_logger(__name__)

MAX_SNIPPET_CHARS = 4000
MAX_TOTAL_SNIPPET_CHARS = 12000

_attachments_adapter = TypeAdapter(list[AgentContextAttachment])


def parse_attachments(inputs: Optional[dict[str, Any]]) -> list[AgentContextAttachment]:
    """Attachments from ``inputs.attachments``; anything malformed yields none."""
    if not inputs or "attachments" not in inputs:
        return []
    try:
        return _attachments_adapter.validate_python(inputs["attachments"])
    except ValidationError:
        logger.debug("Ignoring malformed attachments")
        return []


def resolve_conversation_id(
    request: AgentRunStartRequest,
    inputs: Optional[dict[str, Any]],
) -> Optional[str]:
    """Conversation id from metadata first, then inputs; only valid UUIDs count."""
    metadata_value = (request.metadata or {}).get("conversationId")
    if is_uuid(metadata_value):
        return metadata_value
    input_value = (inputs or {}).get("conversationId")
    if is_uuid(input_value):
        return input_value
    return None


def _format_range(range_: Optional[AgentTextRange]) -> str:
    if range_ is None:
        return "full"
    return f"{range_.start_line_number}:{range_.start_column}-{range_.end_line_number}:{range_.end_column}"


class _SnippetBudget:
    def __init__(self, remaining: int):
        self.remaining = remaining


def _format_attachment(attachment: AgentContextAttachment, index: int, budget: _SnippetBudget) -> str:
    lines = [
        f"[Attachment {index + 1}] {attachment.kind}",
        f"File: {attachment.file_path}",
        f"Range: {_format_range(attachment.range)}",
    ]
    snippet = attachment.snippet
    if snippet:
        if budget.remaining <= 0:
            lines.append("Snippet: (omitted due to size limit)")
        else:
            max_chars = min(MAX_SNIPPET_CHARS, budget.remaining)
            clipped = snippet[:max_chars]
            budget.remaining -= len(clipped)
            lines.append("Snippet:")
            lines.append(clipped)
            if len(snippet) > max_chars:
                lines.append("[truncated]")
    else:
        lines.append("Snippet: (not provided)")
    return "\n".join(lines)


def format_attachments(attachments: Sequence[AgentContextAttachment]) -> str:
    if not attachments:
        return "Attachments: none"
    budget = _SnippetBudget(MAX_TOTAL_SNIPPET_CHARS)
    blocks = [_format_attachment(attachment, i, budget) for i, attachment in enumerate(attachments)]
    return "\n\n".join(["Attachments:", *blocks])
