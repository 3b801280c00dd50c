"""Tool call policy evaluation.

Decisions are computed fresh for every call. Allow/deny lists may be
mutated between calls, so nothing is cached.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional

from aishell.contracts.tools import AgentPolicyConfig, PolicyDecision, ToolCallEnvelope
from aishell.contracts.validate import parse_contract
from aishell.core.exceptions import ContractValidationError
from aishell.core.logging import get_logger

logger = get_logger(__name__)

PolicyEvaluator = Callable[[ToolCallEnvelope], Any]

DENIED_BY_POLICY = "Tool denied by policy."
NOT_IN_ALLOWLIST = "Tool not in allowlist."
EVALUATION_FAILED = "Policy evaluation failed."


class PolicyService:
    """Allow/deny evaluation for tool calls.

    A custom evaluator, when supplied, is authoritative; its raw return value
    is still validated and a malformed decision becomes a global deny.
    """

    def __init__(
        self,
        allowlist: Optional[Iterable[str]] = None,
        denylist: Optional[Iterable[str]] = None,
        evaluator: Optional[PolicyEvaluator] = None,
    ):
        self.allowlist: Optional[set[str]] = set(allowlist) if allowlist is not None else None
        self.denylist: set[str] = set(denylist or ())
        self.evaluator = evaluator

    @classmethod
    def from_settings(cls, settings=None) -> "PolicyService":
        if settings is None:
            from aishell.config.settings import get_settings

            settings = get_settings()
        return cls(allowlist=settings.tool_allowlist_list, denylist=settings.tool_denylist_list)

    def evaluate_tool_call(
        self,
        envelope: ToolCallEnvelope,
        run_policy_override: Optional[AgentPolicyConfig] = None,
    ) -> PolicyDecision:
        """Return an allow/deny decision for ``envelope``.

        Args:
            envelope: The tool call being requested
            run_policy_override: Optional per-run allow/deny lists

        Returns:
            PolicyDecision with ``scope`` ``global`` for list/evaluator denials
            and ``run`` for run-level decisions
        """
        validated = parse_contract(ToolCallEnvelope, envelope)

        if self.evaluator is not None:
            return self._evaluate_custom(validated)

        tool_id = validated.tool_id
        if tool_id in self.denylist:
            return PolicyDecision(allowed=False, reason=DENIED_BY_POLICY, scope="global")

        if run_policy_override is not None and run_policy_override.denylist:
            if tool_id in run_policy_override.denylist:
                return PolicyDecision(allowed=False, reason=DENIED_BY_POLICY, scope="run")

        if self.allowlist is not None and tool_id not in self.allowlist:
            return PolicyDecision(allowed=False, reason=NOT_IN_ALLOWLIST, scope="global")

        if run_policy_override is not None and run_policy_override.allowlist is not None:
            if tool_id not in run_policy_override.allowlist:
                return PolicyDecision(allowed=False, reason=NOT_IN_ALLOWLIST, scope="run")

        return PolicyDecision(allowed=True, scope="run")

    def _evaluate_custom(self, envelope: ToolCallEnvelope) -> PolicyDecision:
        try:
            raw = self.evaluator(envelope)
            return parse_contract(PolicyDecision, raw)
        except ContractValidationError as exc:
            logger.warning(
                "Custom policy evaluator returned a malformed decision",
                data={"tool_id": envelope.tool_id, "errors": exc.errors},
            )
        except Exception:
            logger.exception(
                "Custom policy evaluator raised",
                data={"tool_id": envelope.tool_id},
            )
        return PolicyDecision(allowed=False, reason=EVALUATION_FAILED, scope="global")

    def set_allowlist(self, tool_ids: Optional[Iterable[str]]) -> None:
        self.allowlist = set(tool_ids) if tool_ids is not None else None

    def set_denylist(self, tool_ids: Iterable[str]) -> None:
        self.denylist = set(tool_ids)
