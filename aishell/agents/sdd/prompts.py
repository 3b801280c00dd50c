from __future__ import annotations

from typing import Mapping

SDD_SYSTEM_PROMPT = "You are an SDD workflow engine. Output only the target file content without code fences."

SDD_STEP_PROMPTS = {
    "spec": "Generate specs/<feature>/spec.md only. Do not implement code.",
    "plan": "Generate specs/<feature>/plan.md from spec.md only. Do not implement code.",
    "tasks": "Generate specs/<feature>/tasks.md from plan.md only. Do not implement code.",
    "implement": "Produce a unified diff patch for the selected task only. Do not apply changes.",
    "review": "Review implementation against acceptance criteria and propose fixes only.",
}


def format_context(context: Mapping[str, str]) -> str:
    if not context:
        return "None"
    return "\n\n".join(f"--- {path}\n{content}\n---" for path, content in context.items())


def build_sdd_prompt(step: str, feature_id: str, goal: str, target_path: str, context: Mapping[str, str]) -> str:
    return "\n".join(
        [
            f"Feature: {feature_id}",
            f"Goal: {goal}",
            f"Step: {step}",
            f"Target file: {target_path}",
            f"Instructions: {SDD_STEP_PROMPTS[step]}",
            "Context:",
            format_context(context),
            f"Return only the contents for {target_path}.",
        ]
    )
