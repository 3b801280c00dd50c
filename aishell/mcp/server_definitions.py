"""MCP server definitions contributed by extensions and their environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional

from pydantic import ValidationError

from aishell.contracts.mcp import McpEnvMapping, McpServerContribution, McpServerRef
from aishell.core.logging import get_logger

logger = get_logger(__name__)


def build_mcp_server_key(extension_id: str, server_id: str) -> str:
    return f"{extension_id}:{server_id}"


def server_key_for(ref: McpServerRef) -> str:
    return build_mcp_server_key(ref.extension_id, ref.server_id)


@dataclass(frozen=True)
class ExtensionSnapshot:
    extension_id: str
    extension_path: str
    enabled: bool = True
    mcp_servers: list[Any] = field(default_factory=list)


@dataclass(frozen=True)
class McpServerDefinition:
    extension_id: str
    server_id: str
    name: str
    command: str
    extension_path: str
    args: list[str] = field(default_factory=list)
    transport: str = "stdio"
    env: Optional[dict[str, McpEnvMapping]] = None
    connection_provider_id: Optional[str] = None

    @property
    def key(self) -> str:
        return build_mcp_server_key(self.extension_id, self.server_id)

    @property
    def ref(self) -> McpServerRef:
        return McpServerRef(extension_id=self.extension_id, server_id=self.server_id)


@dataclass(frozen=True)
class McpConnection:
    """The connection an MCP server draws config values and secrets from."""

    id: str
    provider_id: str
    config: dict[str, Any] = field(default_factory=dict)
    secret_ref: Optional[str] = None


def _is_path_like(value: str) -> bool:
    return value.startswith(".") or "/" in value or "\\" in value


def resolve_command(command: str, extension_path: str) -> str:
    """Resolve relative path-like commands against the extension directory.

    Bare executable names (``node``, ``python``) are left for PATH lookup.
    """
    if os.path.isabs(command) or not _is_path_like(command):
        return command
    return os.path.normpath(os.path.join(extension_path, command))


def _build_definition(extension: ExtensionSnapshot, server: Any) -> Optional[McpServerDefinition]:
    try:
        contribution = McpServerContribution.model_validate(server)
    except ValidationError:
        logger.warning(
            "Skipping invalid MCP server contribution",
            data={"extension_id": extension.extension_id},
        )
        return None
    return McpServerDefinition(
        extension_id=extension.extension_id,
        server_id=contribution.id,
        name=contribution.name,
        transport=contribution.transport,
        command=resolve_command(contribution.command, extension.extension_path),
        args=list(contribution.args),
        env=contribution.env,
        connection_provider_id=contribution.connection_provider_id,
        extension_path=extension.extension_path,
    )


def get_mcp_server_definitions(extensions: Iterable[ExtensionSnapshot]) -> dict[str, McpServerDefinition]:
    definitions: dict[str, McpServerDefinition] = {}
    for extension in extensions:
        if not extension.enabled:
            continue
        for server in extension.mcp_servers:
            definition = _build_definition(extension, server)
            if definition is not None:
                definitions[definition.key] = definition
    return definitions


def resolve_mcp_env(
    env_mapping: Optional[Mapping[str, McpEnvMapping]],
    connection: Optional[McpConnection],
    get_secret: Callable[[str], str],
) -> tuple[dict[str, str], Optional[str]]:
    """Build the server environment from its mapping.

    Returns:
        ``(env, error)``; on error ``env`` is empty and ``error`` explains why
    """
    if not env_mapping:
        return {}, None
    if connection is None:
        return {}, "Connection required for environment mapping."

    env: dict[str, str] = {}
    for env_key, source in env_mapping.items():
        if source.source == "config":
            config_key = source.key or env_key
            value = connection.config.get(config_key)
            if value is None:
                return {}, f"Missing config value for {config_key}."
            env[env_key] = str(value)
            continue

        if not connection.secret_ref:
            return {}, "Connection secret not configured."
        try:
            env[env_key] = get_secret(connection.secret_ref)
        except Exception:
            logger.warning("Failed to load connection secret", data={"connection_id": connection.id})
            return {}, "Failed to load connection secret."

    return env, None
