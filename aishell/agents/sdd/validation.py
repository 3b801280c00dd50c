"""Gates run before an SDD step is allowed to execute."""

from __future__ import annotations

import re

from aishell.agents.sdd.context import SddContext
from aishell.agents.sdd.paths import SddDocPaths
from aishell.core.exceptions import SddAlignmentError, SddStepGateError

CONSTITUTION_ALIGNMENT_PATTERNS = (
    re.compile(r"constitution alignment", re.IGNORECASE),
    re.compile(r"aligned with memory/constitution\.md", re.IGNORECASE),
)


def assert_step_allowed(step: str, doc_paths: SddDocPaths, context: SddContext) -> None:
    """Require the documents produced by earlier steps.

    Raises:
        SddStepGateError: Naming every missing prerequisite path
    """
    missing = []
    if step != "spec" and not context.has(doc_paths.spec_path):
        missing.append(doc_paths.spec_path)
    if step in ("tasks", "implement", "review") and not context.has(doc_paths.plan_path):
        missing.append(doc_paths.plan_path)
    if step in ("implement", "review") and not context.has(doc_paths.tasks_path):
        missing.append(doc_paths.tasks_path)

    if missing:
        raise SddStepGateError(
            f'SDD step "{step}" requires the following files: {", ".join(missing)}',
            missing=missing,
        )


def _alignment_paths(step: str, doc_paths: SddDocPaths) -> list[str]:
    if step in ("plan", "tasks"):
        return [doc_paths.spec_path, doc_paths.plan_path]
    if step in ("implement", "review"):
        return [doc_paths.spec_path, doc_paths.plan_path, doc_paths.tasks_path]
    return []


def is_constitution_aligned(content: str) -> bool:
    return any(pattern.search(content) for pattern in CONSTITUTION_ALIGNMENT_PATTERNS)


def assert_constitution_aligned(doc_paths: SddDocPaths, context: SddContext, step: str) -> None:
    """Loaded SDD documents must reference the constitution.

    Documents that are absent or empty are left to the step gate.

    Raises:
        SddAlignmentError: Naming every misaligned document
    """
    misaligned = []
    for path in _alignment_paths(step, doc_paths):
        content = context.files.get(path)
        if not content:
            continue
        if not is_constitution_aligned(content):
            misaligned.append(path)

    if misaligned:
        raise SddAlignmentError(
            "SDD constitution alignment check failed. "
            'Add a "Constitution alignment" section referencing memory/constitution.md to: '
            + ", ".join(misaligned),
            files=misaligned,
        )
