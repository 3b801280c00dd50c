"""Configuration for the agent core."""

from aishell.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
