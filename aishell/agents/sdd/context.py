"""Loading SDD context documents through ``workspace.read``."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from aishell.agents.sdd.paths import SddDocPaths
from aishell.contracts.tools import ToolCallEnvelope
from aishell.core.exceptions import AgentCoreError, SddContextError
from aishell.core.logging import get_logger
from aishell.services.broker_client import ToolExecutor
from aishell.services.workspace_tools import WORKSPACE_READ_TOOL_ID

logger = get_logger(__name__)

BASE_CONTEXT_PATHS = (
    "memory/constitution.md",
    "memory/context/00-overview.md",
    "docs/architecture/architecture.md",
)


@dataclass
class SddContext:
    files: dict[str, str] = field(default_factory=dict)

    def has(self, path: str) -> bool:
        return path in self.files


ContextLoader = Callable[[str, str, SddDocPaths], Awaitable[SddContext]]


class WorkspaceReadError(AgentCoreError):
    pass


def build_context_paths_for_step(step: str, doc_paths: SddDocPaths) -> list[str]:
    """Mandatory context for ``step``: the base documents plus every earlier step's output."""
    paths = list(BASE_CONTEXT_PATHS)
    if step == "spec":
        return paths
    paths.append(doc_paths.spec_path)
    if step == "plan":
        return paths
    paths.append(doc_paths.plan_path)
    if step == "tasks":
        return paths
    paths.append(doc_paths.tasks_path)
    return paths


def build_optional_paths_for_step(step: str, doc_paths: SddDocPaths) -> list[str]:
    if step == "spec":
        return [doc_paths.spec_path, doc_paths.plan_path, doc_paths.tasks_path]
    if step == "plan":
        return [doc_paths.plan_path, doc_paths.tasks_path]
    if step == "tasks":
        return [doc_paths.tasks_path]
    return []


def context_to_record(context: SddContext) -> dict[str, str]:
    return dict(context.files)


async def read_workspace_file(
    tool_executor: ToolExecutor,
    run_id: str,
    path: str,
    id_provider: Callable[[], str],
    requester_id: str,
) -> str:
    envelope = ToolCallEnvelope(
        call_id=id_provider(),
        tool_id=WORKSPACE_READ_TOOL_ID,
        requester_id=requester_id,
        run_id=run_id,
        input={"path": path},
        reason=f"Load SDD context: {path}",
    )
    result = await tool_executor.execute_tool_call(envelope)
    if not result.ok:
        raise WorkspaceReadError(result.error or "workspace.read failed")

    output = result.output
    if not isinstance(output, dict) or not isinstance(output.get("content"), str):
        raise WorkspaceReadError("workspace.read returned invalid content")
    return output["content"]


def create_context_loader(
    tool_executor: ToolExecutor,
    id_provider: Optional[Callable[[], str]] = None,
    requester_id: str = "agent-host",
) -> ContextLoader:
    """Build a loader reading mandatory and optional SDD documents for a step.

    Every mandatory file is attempted before failing so the error lists all
    of the missing ones. Optional documents are read best-effort.
    """
    id_provider = id_provider or (lambda: str(uuid.uuid4()))

    async def load(run_id: str, step: str, doc_paths: SddDocPaths) -> SddContext:
        context = SddContext()
        missing: list[str] = []

        required = build_context_paths_for_step(step, doc_paths)
        for path in required:
            try:
                context.files[path] = await read_workspace_file(
                    tool_executor, run_id, path, id_provider, requester_id
                )
            except Exception as exc:
                missing.append(f"{path} ({str(exc) or 'read failed'})")

        if missing:
            raise SddContextError(
                f"Missing required context files: {', '.join(missing)}",
                missing=missing,
            )

        for path in build_optional_paths_for_step(step, doc_paths):
            if path in required or context.has(path):
                continue
            try:
                context.files[path] = await read_workspace_file(
                    tool_executor, run_id, path, id_provider, requester_id
                )
            except Exception as exc:
                logger.debug("Optional SDD context not loaded", data={"path": path, "error": str(exc)})

        logger.info("SDD context loaded", data={"run_id": run_id, "step": step, "files": len(context.files)})
        return context

    return load
