"""Tests for tool call policy evaluation."""

import pytest
pytestmark = pytest.mark.security

from aishell.config.settings import Settings
from aishell.contracts.tools import AgentPolicyConfig, PolicyDecision
from aishell.services.policy_service import PolicyService

from conftest import make_envelope


class TestPolicyService:
    """Tests for PolicyService.evaluate_tool_call."""

    def test_allows_by_default(self):
        """With no lists every tool is allowed at run scope."""
        decision = PolicyService().evaluate_tool_call(make_envelope("demo.echo"))
        assert decision == PolicyDecision(allowed=True, scope="run")

    def test_global_denylist(self):
        decision = PolicyService(denylist=["demo.echo"]).evaluate_tool_call(make_envelope("demo.echo"))
        assert decision.allowed is False
        assert decision.reason == "Tool denied by policy."
        assert decision.scope == "global"

    def test_denylist_wins_over_allowlist(self):
        """A tool on both lists is denied."""
        service = PolicyService(allowlist=["demo.echo"], denylist=["demo.echo"])
        assert service.evaluate_tool_call(make_envelope("demo.echo")).allowed is False

    def test_allowlist_miss(self):
        decision = PolicyService(allowlist=["model.generate"]).evaluate_tool_call(make_envelope("demo.echo"))
        assert decision.allowed is False
        assert decision.reason == "Tool not in allowlist."
        assert decision.scope == "global"

    def test_empty_allowlist_denies_everything(self):
        """An explicit empty allowlist is different from no allowlist."""
        assert PolicyService(allowlist=[]).evaluate_tool_call(make_envelope()).allowed is False

    def test_run_override_denylist(self):
        override = AgentPolicyConfig(denylist=["demo.echo"])
        decision = PolicyService().evaluate_tool_call(make_envelope("demo.echo"), override)
        assert decision.allowed is False
        assert decision.scope == "run"

    def test_run_override_allowlist(self):
        override = AgentPolicyConfig(allowlist=["model.generate"])
        service = PolicyService()
        assert service.evaluate_tool_call(make_envelope("demo.echo"), override).scope == "run"
        assert service.evaluate_tool_call(make_envelope("demo.echo"), override).allowed is False
        assert service.evaluate_tool_call(make_envelope("model.generate"), override).allowed is True

    def test_run_override_cannot_widen_global_allowlist(self):
        service = PolicyService(allowlist=["model.generate"])
        override = AgentPolicyConfig(allowlist=["demo.echo"])
        decision = service.evaluate_tool_call(make_envelope("demo.echo"), override)
        assert decision.allowed is False
        assert decision.scope == "global"

    def test_lists_mutated_between_calls(self):
        """Decisions are not cached across list changes."""
        service = PolicyService()
        envelope = make_envelope("demo.echo")
        assert service.evaluate_tool_call(envelope).allowed is True
        service.set_denylist(["demo.echo"])
        assert service.evaluate_tool_call(envelope).allowed is False
        service.set_denylist([])
        service.set_allowlist(["other"])
        assert service.evaluate_tool_call(envelope).allowed is False
        service.set_allowlist(None)
        assert service.evaluate_tool_call(envelope).allowed is True

    def test_custom_evaluator_is_authoritative(self):
        service = PolicyService(
            denylist=["demo.echo"],
            evaluator=lambda envelope: {"allowed": True, "scope": "session"},
        )
        decision = service.evaluate_tool_call(make_envelope("demo.echo"))
        assert decision.allowed is True
        assert decision.scope == "session"

    def test_malformed_custom_decision_denies(self):
        service = PolicyService(evaluator=lambda envelope: {"allowed": "yes"})
        decision = service.evaluate_tool_call(make_envelope())
        assert decision == PolicyDecision(allowed=False, reason="Policy evaluation failed.", scope="global")

    def test_raising_custom_evaluator_denies(self):
        def explode(envelope):
            raise RuntimeError("evaluator down")

        decision = PolicyService(evaluator=explode).evaluate_tool_call(make_envelope())
        assert decision.allowed is False
        assert decision.reason == "Policy evaluation failed."

    def test_from_settings(self):
        settings = Settings(_env_file=None, tool_allowlist="a,b", tool_denylist="b")
        service = PolicyService.from_settings(settings)
        assert service.evaluate_tool_call(make_envelope("a")).allowed is True
        assert service.evaluate_tool_call(make_envelope("b")).allowed is False
        assert service.evaluate_tool_call(make_envelope("c")).allowed is False
