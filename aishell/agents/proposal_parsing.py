"""Turning model text into ``Proposal`` objects.

Model output is either a JSON object carrying writes and/or a patch, or a
raw unified diff. Malformed write entries are dropped; a proposal with
neither writes nor a patch is rejected.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

from aishell.contracts.proposals import Proposal
from aishell.contracts.validate import parse_contract
from aishell.core.exceptions import ModelOutputError

_CODE_FENCE = re.compile(r"```[^\n]*\n([\s\S]*?)\n```")
_DIFF_HEADER = re.compile(r"^diff --git ", re.MULTILINE)
_PLUS_HEADER = re.compile(r"^\+\+\+ ", re.MULTILINE)


def normalize_model_output(text: str) -> str:
    """Strip surrounding whitespace and a single enclosing code fence."""
    trimmed = text.strip()
    match = _CODE_FENCE.fullmatch(trimmed)
    normalized = match.group(1).rstrip() if match else trimmed
    if not normalized:
        raise ModelOutputError("model.generate returned empty output")
    return normalized


def count_files_in_patch(patch: str) -> int:
    """Count ``diff --git`` headers, falling back to ``+++`` headers."""
    diff_headers = len(_DIFF_HEADER.findall(patch))
    if diff_headers:
        return diff_headers
    return len(_PLUS_HEADER.findall(patch))


def try_parse_json(text: str) -> Optional[Any]:
    """Parse ``text`` as a JSON object or array; None if it is neither."""
    trimmed = text.strip()
    if not trimmed.startswith(("{", "[")):
        return None
    try:
        parsed = json.loads(trimmed)
    except ValueError:
        return None
    return parsed if isinstance(parsed, (dict, list)) else None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _collect_writes(raw_writes: Any) -> list[dict[str, str]]:
    if not isinstance(raw_writes, list):
        return []
    writes = []
    for entry in raw_writes:
        if not isinstance(entry, dict):
            continue
        path, content = entry.get("path"), entry.get("content")
        if not isinstance(path, str) or not path:
            continue
        if not isinstance(content, str):
            continue
        writes.append({"path": path, "content": content})
    return writes


def proposal_from_record(record: Any, empty_error: Exception) -> Proposal:
    """Build a proposal from a loosely-shaped JSON record.

    Args:
        record: Parsed JSON; arrays are treated as records without fields
        empty_error: Raised when the record has no usable writes and no patch
    """
    fields = record if isinstance(record, dict) else {}
    writes = _collect_writes(fields.get("writes"))
    raw_patch = fields.get("patch")
    patch = raw_patch if isinstance(raw_patch, str) and raw_patch.strip() else None

    if not writes and patch is None:
        raise empty_error

    summary_input = fields.get("summary") if isinstance(fields.get("summary"), dict) else {}
    files_from_patch = count_files_in_patch(patch) if patch else 0
    fallback = max(len(writes), files_from_patch, 1 if patch else 0)
    files_changed = summary_input.get("filesChanged")
    summary: dict[str, Any] = {"filesChanged": files_changed if _is_int(files_changed) else fallback}
    for key in ("additions", "deletions"):
        if _is_int(summary_input.get(key)):
            summary[key] = summary_input[key]

    return parse_contract(Proposal, {"writes": writes, "patch": patch, "summary": summary})


def proposal_from_patch(patch: str) -> Proposal:
    """Wrap a raw unified diff; at least one file is assumed changed."""
    return parse_contract(
        Proposal,
        {"writes": [], "patch": patch, "summary": {"filesChanged": max(1, count_files_in_patch(patch))}},
    )
