from __future__ import annotations

from .config import (
    AgentConfig,
    DEFAULT_HOST,
    DEFAULT_PORT,
    load_agent_config,
    load_agent_config_dict,
)
from .errors import (
    AuthenticationError,
    CommandError,
    ConfigError,
    DockerUnavailableError,
    ExecSpawnError,
    ExecTimeoutError,
    InstallInProgressError,
    InvalidPayloadError,
    LogAccessDeniedError,
    LogFileNotFoundError,
    TypedAgentError,
)
from .paths import AgentPaths, resolve_username

__all__ = [
    "AgentConfig",
    "AgentPaths",
    "AuthenticationError",
    "CommandError",
    "ConfigError",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "DockerUnavailableError",
    "ExecSpawnError",
    "ExecTimeoutError",
    "InstallInProgressError",
    "InvalidPayloadError",
    "LogAccessDeniedError",
    "LogFileNotFoundError",
    "TypedAgentError",
    "load_agent_config",
    "load_agent_config_dict",
    "resolve_username",
]
