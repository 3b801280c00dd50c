"""Core module with logging and exceptions."""

from aishell.core.exceptions import AgentCoreError
from aishell.core.logging import bind_run_context, get_logger, setup_logging

__all__ = [
    "AgentCoreError",
    "bind_run_context",
    "get_logger",
    "setup_logging",
]
