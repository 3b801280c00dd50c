from .planning_agent import PlanningWorkflowRunner, parse_draft_output

__all__ = ["PlanningWorkflowRunner", "parse_draft_output"]
