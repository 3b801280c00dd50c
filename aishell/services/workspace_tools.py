"""Built-in workspace tools backed by the local file system."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from aishell.contracts.tools import ToolCallEnvelope
from aishell.core.logging import get_logger
from aishell.services.tool_broker import ToolBroker, ToolDefinition

logger = get_logger(__name__)

WORKSPACE_READ_TOOL_ID = "workspace.read"


class WorkspacePathError(ValueError):
    """Path is missing, not a string, or escapes the workspace root."""


def resolve_workspace_path(root: Path, relative: Any) -> Path:
    if not isinstance(relative, str) or not relative.strip():
        raise WorkspacePathError("path must be a non-empty string")
    candidate = (root / relative).resolve()
    if candidate != root and root not in candidate.parents:
        raise WorkspacePathError(f"path escapes workspace: {relative}")
    return candidate


def register_workspace_tools(broker: ToolBroker, root: str | Path) -> None:
    """Register ``workspace.read`` (``{path}`` -> ``{content, encoding}``)."""
    workspace_root = Path(root).resolve()

    def read(tool_input: Any, envelope: ToolCallEnvelope) -> dict[str, str]:
        path = tool_input.get("path") if isinstance(tool_input, dict) else None
        target = resolve_workspace_path(workspace_root, path)
        logger.debug("workspace.read", data={"path": path, "run_id": envelope.run_id})
        return {"content": target.read_text(encoding="utf-8"), "encoding": "utf-8"}

    broker.register_tool_definition(
        ToolDefinition(
            id=WORKSPACE_READ_TOOL_ID,
            execute=read,
            description="Read a UTF-8 text file relative to the workspace root.",
            input_validator=lambda value: isinstance(value, dict) and isinstance(value.get("path"), str),
        )
    )
