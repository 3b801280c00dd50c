from .chat_agent import ChatWorkflowRunner

__all__ = ["ChatWorkflowRunner"]
