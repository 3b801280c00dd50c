from .deep_agent import DeepAgentRunner

__all__ = ["DeepAgentRunner"]
