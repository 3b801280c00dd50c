from .edit_agent import EditWorkflowRunner
from .proposal import parse_edit_proposal_output

__all__ = ["EditWorkflowRunner", "parse_edit_proposal_output"]
