"""Prompt construction for chat replies."""

from __future__ import annotations

from typing import Sequence

from aishell.agents.attachments import format_attachments
from aishell.contracts.conversations import ChatHistoryEntry
from aishell.contracts.proposals import AgentContextAttachment

CHAT_SYSTEM_PROMPT = " ".join(
    [
        "You are a helpful assistant.",
        "Respond in GitHub-flavored Markdown.",
        "Do not include raw HTML.",
        "Do not reveal chain-of-thought; provide concise, user-facing answers.",
        "Use the provided context and respond clearly.",
    ]
)


def format_history(history: Sequence[ChatHistoryEntry]) -> str:
    if not history:
        return "History: none"
    lines = ["History:"]
    for entry in history:
        stamp = f" ({entry.created_at})" if entry.created_at else ""
        lines.append(f"- {entry.role}{stamp}: {entry.content}")
    return "\n".join(lines)


def build_chat_prompt(
    prompt: str,
    attachments: Sequence[AgentContextAttachment] = (),
    history: Sequence[ChatHistoryEntry] = (),
) -> str:
    return "\n".join(
        [
            f"User request: {prompt}",
            "",
            format_history(history),
            "",
            format_attachments(attachments),
        ]
    )
