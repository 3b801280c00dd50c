"""Agent core settings using Pydantic BaseSettings."""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
ENVIRONMENTS = frozenset({"development", "staging", "production", "test"})


class Settings(BaseSettings):
    """Agent core configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="AISHELL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)
    log_file: Optional[str] = Field(default=None)

    # MCP stdio transport
    mcp_request_timeout_seconds: float = Field(default=15.0)
    mcp_protocol_version: str = Field(default="2024-11-05")
    mcp_client_name: str = Field(default="ai-shell")
    mcp_client_version: str = Field(default="dev")
    # Grace period between SIGTERM and SIGKILL when stopping a server
    mcp_stop_timeout_seconds: float = Field(default=5.0)

    # Agent host <-> broker boundary
    broker_call_timeout_seconds: float = Field(default=30.0)
    agent_requester_id: str = Field(default="agent-host")

    # Tool policy
    # Format: comma-separated tool ids. Empty allowlist means "no allowlist".
    tool_allowlist: str = Field(default="")
    tool_denylist: str = Field(default="")

    # Events and audit
    event_backlog_size: int = Field(default=1000)
    # Runs whose backlogs are retained; least recently active runs go first
    event_max_runs: int = Field(default=256)
    audit_log_path: Optional[str] = Field(
        default=None,
        description="JSONL file receiving tool access audit records. Unset keeps records in memory only.",
    )
    audit_max_records: int = Field(default=1000)

    @property
    def tool_allowlist_list(self) -> Optional[List[str]]:
        """Parse allowlist from comma-separated string, None when unset."""
        items = [t.strip() for t in self.tool_allowlist.split(",") if t.strip()]
        return items or None

    @property
    def tool_denylist_list(self) -> List[str]:
        """Parse denylist from comma-separated string."""
        return [t.strip() for t in self.tool_denylist.split(",") if t.strip()]

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {value!r}")
        return level

    @field_validator("environment")
    @classmethod
    def normalize_environment(cls, value: str) -> str:
        name = (value or "").strip().lower()
        if name not in ENVIRONMENTS:
            raise ValueError(f"environment must be one of {', '.join(sorted(ENVIRONMENTS))}")
        return name

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        if self.mcp_request_timeout_seconds <= 0:
            raise ValueError("MCP_REQUEST_TIMEOUT_SECONDS must be positive")
        if self.broker_call_timeout_seconds <= 0:
            raise ValueError("BROKER_CALL_TIMEOUT_SECONDS must be positive")
        if self.event_backlog_size < 1:
            raise ValueError("EVENT_BACKLOG_SIZE must be at least 1")
        if self.event_max_runs < 1:
            raise ValueError("EVENT_MAX_RUNS must be at least 1")
        if self.audit_max_records < 1:
            raise ValueError("AUDIT_MAX_RECORDS must be at least 1")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
