"""Planning workflow runner.

One ``model.generate`` call returns Markdown with ``# spec.md``,
``# plan.md`` and ``# tasks.md`` headings. The text under each heading
becomes one field of an ``AgentDraft``, published as a ``draft`` event.
Nothing is written to the workspace; saving a draft is up to the caller.
"""

from __future__ import annotations

import re

from aishell.agents.base import RunState, WorkflowRunner, error_code, error_message
from aishell.agents.planning.prompts import PLANNING_SYSTEM_PROMPT, build_planning_prompt
from aishell.agents.proposal_parsing import normalize_model_output
from aishell.contracts.drafts import AgentDraft
from aishell.contracts.events import DraftEvent, ErrorEvent, StatusEvent
from aishell.contracts.runs import AgentRunStartRequest
from aishell.contracts.validate import parse_contract
from aishell.core.exceptions import ContractValidationError, ModelOutputError
from aishell.core.logging import bind_run_context, get_logger

logger = get_logger(__name__)

DRAFT_SECTIONS = ("spec.md", "plan.md", "tasks.md")

_SECTION_HEADING = re.compile(r"^#\s*(spec\.md|plan\.md|tasks\.md)\s*$", re.IGNORECASE | re.MULTILINE)


def split_draft_sections(text: str) -> dict[str, str]:
    headings = list(_SECTION_HEADING.finditer(text))
    if len(headings) < len(DRAFT_SECTIONS):
        raise ModelOutputError('Draft output must include headings: "# spec.md", "# plan.md", "# tasks.md".')

    sections: dict[str, str] = {}
    for heading, following in zip(headings, headings[1:] + [None]):
        end = following.start() if following is not None else len(text)
        # a repeated heading replaces the earlier section
        sections[heading.group(1).lower()] = text[heading.end():end].strip()

    if not all(sections.get(name) for name in DRAFT_SECTIONS):
        raise ModelOutputError("Draft output must include non-empty sections for spec.md, plan.md, and tasks.md.")
    return sections


def parse_draft_output(text: str, feature_id: str) -> AgentDraft:
    sections = split_draft_sections(normalize_model_output(text))
    return parse_contract(
        AgentDraft,
        {
            "featureId": feature_id,
            "spec": sections["spec.md"],
            "plan": sections["plan.md"],
            "tasks": sections["tasks.md"],
            "status": "draft",
        },
    )


class PlanningWorkflowRunner(WorkflowRunner):
    workflow = "planning"

    async def start_run(self, run_id: str, request: AgentRunStartRequest | dict, feature_id: str) -> AgentDraft:
        validated = parse_contract(AgentRunStartRequest, request)
        if not feature_id:
            raise ContractValidationError("AgentDraft", ["featureId: must not be empty"])
        prompt = build_planning_prompt(feature_id, validated.goal, validated.inputs)

        with bind_run_context(run_id, self.workflow):
            self._runs[run_id] = RunState(run_id=run_id, step=feature_id)
            self._emit(StatusEvent, run_id, status="running")
            try:
                model_input = self._model_input(
                    prompt,
                    system_prompt=PLANNING_SYSTEM_PROMPT,
                    connection_id=validated.connection_id,
                    config=validated.config,
                )
                text = await self._generate_text(run_id, model_input, f"Planning draft for {feature_id}")
                draft = parse_draft_output(text, feature_id)

                self._emit(DraftEvent, run_id, draft=draft)
                self._emit(StatusEvent, run_id, status="completed")
                logger.info("Planning draft ready", data={"run_id": run_id, "feature_id": feature_id})
                return draft
            except Exception as exc:
                message = error_message(exc, "Planning run failed")
                logger.error("Planning run failed", data={"run_id": run_id, "error": message})
                self._emit(ErrorEvent, run_id, message=message, code=error_code(exc))
                self._emit(StatusEvent, run_id, status="failed")
                raise
            finally:
                self._runs.pop(run_id, None)
