"""Prompt construction for spec/plan/tasks drafts."""

from __future__ import annotations

import json
from typing import Any, Optional

PLANNING_SYSTEM_PROMPT = (
    "You are a planning assistant for a software repository. "
    "Write a feature spec, an implementation plan and a task list in Markdown. "
    'Start each part with its own heading line: "# spec.md", "# plan.md" and "# tasks.md". '
    "Do not write code and do not apply changes."
)


def build_planning_prompt(feature_id: str, goal: str, inputs: Optional[dict[str, Any]] = None) -> str:
    parts = [
        f"Feature: {feature_id}",
        f"Goal: {goal}",
        "",
        "Provide spec, plan, and tasks that match repository conventions.",
    ]
    if inputs:
        parts.extend(["Inputs:", json.dumps(inputs, indent=2)])
    return "\n".join(parts)
