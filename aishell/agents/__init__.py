from .base import MODEL_GENERATE_TOOL_ID, WorkflowRunner
from .chat import ChatWorkflowRunner
from .deep import DeepAgentRunner
from .edit import EditWorkflowRunner
from .host import AgentHost, parse_start_run_message
from .planning import PlanningWorkflowRunner
from .sdd import SddWorkflowRunner

__all__ = [
    "MODEL_GENERATE_TOOL_ID",
    "AgentHost",
    "ChatWorkflowRunner",
    "DeepAgentRunner",
    "EditWorkflowRunner",
    "PlanningWorkflowRunner",
    "SddWorkflowRunner",
    "WorkflowRunner",
    "parse_start_run_message",
]
