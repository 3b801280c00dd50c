"""Spec-driven development workflow runner.

A run executes one step of ``spec -> plan -> tasks -> implement``:

1. Load the constitution, overview and architecture documents plus the
   outputs of earlier steps.
2. Check constitution alignment and step prerequisites.
3. Ask the model for the step's artifact and publish it as a proposal
   awaiting approval.

Cancellation is cooperative. ``control_run`` marks the run's scope and the
runner stops at its next checkpoint, emitting ``runCanceled`` instead of a
failure.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from aishell.agents.base import WorkflowRunner, error_message
from aishell.agents.proposal_parsing import normalize_model_output
from aishell.agents.sdd.context import ContextLoader, SddContext, context_to_record, create_context_loader
from aishell.agents.sdd.paths import SddDocPaths, resolve_sdd_doc_paths
from aishell.agents.sdd.prompts import SDD_SYSTEM_PROMPT, build_sdd_prompt
from aishell.agents.sdd.proposal import (
    DOC_STEPS,
    build_doc_proposal,
    parse_implementation_output,
    resolve_target_path,
)
from aishell.agents.sdd.validation import assert_constitution_aligned, assert_step_allowed
from aishell.contracts.events import (
    SddApprovalRequiredEvent,
    SddContextLoadedEvent,
    SddOutputAppendedEvent,
    SddProposalReadyEvent,
    SddRunCanceledEvent,
    SddRunCompletedEvent,
    SddRunFailedEvent,
    SddStartedEvent,
    SddStepStartedEvent,
)
from aishell.contracts.proposals import Proposal
from aishell.contracts.runs import SddRunControlRequest, SddRunStartRequest
from aishell.contracts.validate import parse_contract
from aishell.core.exceptions import SddRunCanceledError
from aishell.core.logging import bind_run_context, get_logger
from aishell.services.broker_client import ToolExecutor

logger = get_logger(__name__)

# Run ids remembered for held cancels and for recently finished runs
MAX_TRACKED_RUN_IDS = 256


@dataclass
class SddRunScope:
    """Per-run state owned by the runner for the lifetime of ``start_run``."""

    run_id: str
    step: str
    status: str = "running"
    canceled: bool = False
    cancel_reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        self.canceled = True
        self.cancel_reason = reason

    def checkpoint(self) -> None:
        if self.canceled:
            raise SddRunCanceledError(self.cancel_reason)


class SddWorkflowRunner(WorkflowRunner):
    """Runs SDD steps and publishes their artifacts as proposals.

    Args:
        tool_executor: Executes ``workspace.read`` and ``model.generate`` calls
        on_event: Receives every SDD run event
        now: ISO-8601 timestamp source
        id_provider: UUID string source
        requester_id: ``requesterId`` for envelopes built by the runner
        context_loader: Overrides the ``workspace.read`` based loader
        doc_path_resolver: Overrides feature id to document path resolution
        max_tracked_run_ids: Cap on held cancels and on remembered finished runs
    """

    workflow = "sdd"

    def __init__(
        self,
        tool_executor: ToolExecutor,
        on_event,
        now: Optional[Callable[[], str]] = None,
        id_provider: Optional[Callable[[], str]] = None,
        requester_id: Optional[str] = None,
        context_loader: Optional[ContextLoader] = None,
        doc_path_resolver: Callable[[str], SddDocPaths] = resolve_sdd_doc_paths,
        max_tracked_run_ids: int = MAX_TRACKED_RUN_IDS,
    ):
        super().__init__(tool_executor, on_event, now=now, id_provider=id_provider, requester_id=requester_id)
        self._context_loader = context_loader or create_context_loader(
            tool_executor, id_provider=self._id_provider, requester_id=self.requester_id
        )
        self._doc_path_resolver = doc_path_resolver
        self._scopes: dict[str, SddRunScope] = {}
        self._max_tracked = max_tracked_run_ids
        self._pending_cancels: OrderedDict[str, Optional[str]] = OrderedDict()
        self._finished: OrderedDict[str, None] = OrderedDict()

    def active_runs(self) -> list[str]:
        return list(self._scopes)

    def held_cancels(self) -> list[str]:
        """Run ids with a cancel waiting for their run to start."""
        return list(self._pending_cancels)

    def get_scope(self, run_id: str) -> Optional[SddRunScope]:
        return self._scopes.get(run_id)

    def control_run(self, request: SddRunControlRequest | dict) -> None:
        """Record a cancellation; it takes effect at the run's next checkpoint.

        Cancels for runs that have not started yet are held until that run
        starts, oldest first out once more than ``max_tracked_run_ids`` are
        held. A cancel for a run that already finished is dropped, so a later
        run reusing the id is not affected. ``retry`` is accepted but has no
        effect here.
        """
        validated = parse_contract(SddRunControlRequest, request)
        if validated.action != "cancel":
            logger.info("Ignoring SDD control action", data={"run_id": validated.run_id, "action": validated.action})
            return

        scope = self._scopes.get(validated.run_id)
        if scope is not None:
            scope.cancel(validated.reason)
        elif validated.run_id in self._finished:
            logger.info("Ignoring cancel for finished SDD run", data={"run_id": validated.run_id})
            return
        else:
            self._remember(self._pending_cancels, validated.run_id, validated.reason)
        logger.info("SDD run cancel requested", data={"run_id": validated.run_id, "reason": validated.reason})

    async def start_run(self, run_id: str, request: SddRunStartRequest | dict) -> None:
        validated = parse_contract(SddRunStartRequest, request)
        step = validated.step or "spec"

        scope = SddRunScope(run_id=run_id, step=step)
        if run_id in self._pending_cancels:
            scope.cancel(self._pending_cancels.pop(run_id))
        self._finished.pop(run_id, None)
        self._scopes[run_id] = scope

        with bind_run_context(run_id, self.workflow):
            try:
                self._emit(SddStartedEvent, run_id, feature_id=validated.feature_id, goal=validated.goal, step=step)
                scope.checkpoint()

                doc_paths = self._doc_path_resolver(validated.feature_id)
                context = await self._context_loader(run_id, step, doc_paths)
                self._emit(SddContextLoadedEvent, run_id, step=step)

                assert_constitution_aligned(doc_paths, context, step)
                assert_step_allowed(step, doc_paths, context)
                self._emit(SddStepStartedEvent, run_id, step=step)

                if step in DOC_STEPS:
                    await self._run_doc_step(scope, validated, doc_paths, context)
                elif step == "implement":
                    await self._run_implement_step(scope, validated, doc_paths, context)
                else:
                    self._emit(SddOutputAppendedEvent, run_id, content=f'SDD step "{step}" is not implemented yet.')

                self._emit(SddRunCompletedEvent, run_id)
                scope.status = "completed"
                logger.info("SDD run completed", data={"run_id": run_id, "step": step})
            except Exception as exc:
                if scope.canceled:
                    scope.status = "canceled"
                    logger.info("SDD run canceled", data={"run_id": run_id, "reason": scope.cancel_reason})
                    self._emit(SddRunCanceledEvent, run_id, reason=scope.cancel_reason)
                    return
                scope.status = "failed"
                message = error_message(exc, "SDD run failed")
                logger.error("SDD run failed", data={"run_id": run_id, "step": step, "error": message})
                self._emit(SddRunFailedEvent, run_id, message=message)
                raise
            finally:
                self._scopes.pop(run_id, None)
                self._remember(self._finished, run_id, None)

    def _remember(self, tracked: OrderedDict, run_id: str, value: Optional[str]) -> None:
        tracked[run_id] = value
        tracked.move_to_end(run_id)
        while len(tracked) > self._max_tracked:
            tracked.popitem(last=False)

    async def _generate(self, scope: SddRunScope, request: SddRunStartRequest, prompt: str) -> str:
        model_input = self._model_input(
            prompt,
            system_prompt=SDD_SYSTEM_PROMPT,
            connection_id=request.connection_id,
            config=request.config,
        )
        scope.checkpoint()
        text = await self._generate_text(
            scope.run_id, model_input, f"SDD {request.feature_id} {scope.step} generation"
        )
        scope.checkpoint()
        return text

    async def _run_doc_step(
        self,
        scope: SddRunScope,
        request: SddRunStartRequest,
        doc_paths: SddDocPaths,
        context: SddContext,
    ) -> None:
        target_path = resolve_target_path(scope.step, doc_paths)
        prompt = build_sdd_prompt(
            scope.step, request.feature_id, request.goal, target_path, context_to_record(context)
        )
        text = await self._generate(scope, request, prompt)
        proposal = build_doc_proposal(target_path, normalize_model_output(text))
        self._publish(scope.run_id, proposal, f"Proposal ready for {target_path}.")

    async def _run_implement_step(
        self,
        scope: SddRunScope,
        request: SddRunStartRequest,
        doc_paths: SddDocPaths,
        context: SddContext,
    ) -> None:
        prompt = build_sdd_prompt(
            scope.step, request.feature_id, request.goal, doc_paths.feature_root, context_to_record(context)
        )
        text = await self._generate(scope, request, prompt)
        proposal = parse_implementation_output(text)
        count = proposal.summary.files_changed
        label = "file" if count == 1 else "files"
        self._publish(scope.run_id, proposal, f"Implementation proposal ready ({count} {label}).")

    def _publish(self, run_id: str, proposal: Proposal, message: str) -> None:
        self._emit(SddOutputAppendedEvent, run_id, content=message)
        self._emit(SddProposalReadyEvent, run_id, proposal=proposal)
        self._emit(SddApprovalRequiredEvent, run_id, proposal=proposal)
