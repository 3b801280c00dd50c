"""Agent core: tool broker, MCP bridge and workflow runners."""

__version__ = "0.1.0"
