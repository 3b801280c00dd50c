"""Feature id to SDD document path resolution."""

from __future__ import annotations

import re
from dataclasses import dataclass

from aishell.core.exceptions import RunError

DOC_FILENAMES = ("spec.md", "plan.md", "tasks.md")
FEATURE_ROOT_PREFIX = "specs/"

_REPEATED_SLASHES = re.compile(r"/+")


@dataclass(frozen=True)
class SddDocPaths:
    feature_root: str
    spec_path: str
    plan_path: str
    tasks_path: str


def _normalize(value: str) -> str:
    value = _REPEATED_SLASHES.sub("/", value.replace("\\", "/"))
    if value.startswith("./"):
        value = value[2:]
    return value.strip()


def _strip_doc_suffix(value: str) -> str:
    lower = value.lower()
    for filename in DOC_FILENAMES:
        suffix = f"/{filename}"
        if lower.endswith(suffix):
            return value[: -len(suffix)]
    return value


def resolve_sdd_doc_paths(feature_id: str) -> SddDocPaths:
    """Resolve a feature id (or a path to one of its documents) to its doc paths.

    ``my-feature``, ``specs/my-feature/`` and ``./specs/my-feature/Plan.md``
    all resolve to ``specs/my-feature``. Ids that already contain a
    directory are kept where they are.

    Raises:
        RunError: If the id is empty or resolves to an empty root
    """
    raw = _normalize(feature_id)
    if not raw:
        raise RunError("SDD feature id must not be empty.")

    feature_root = _strip_doc_suffix(raw).rstrip("/")
    if not feature_root.startswith(FEATURE_ROOT_PREFIX) and "/" not in feature_root:
        feature_root = f"{FEATURE_ROOT_PREFIX}{feature_root}"
    feature_root = feature_root.rstrip("/")

    if not feature_root:
        raise RunError(f'SDD feature id "{feature_id}" did not resolve to a valid root.')

    return SddDocPaths(
        feature_root=feature_root,
        spec_path=f"{feature_root}/spec.md",
        plan_path=f"{feature_root}/plan.md",
        tasks_path=f"{feature_root}/tasks.md",
    )
