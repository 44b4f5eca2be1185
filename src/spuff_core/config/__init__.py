from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python < 3.11
    import tomli as tomllib

from spuff_core.errors import ConfigError
from spuff_core.logging import LOG_LEVEL_CHOICES, normalize_log_level
from spuff_core.paths import AgentPaths, resolve_username


TOKEN_ENV = "SPUFF_AGENT_TOKEN"
PORT_ENV = "SPUFF_AGENT_PORT"
USER_ENV = "SPUFF_AGENT_USER"
LOG_LEVEL_ENV = "SPUFF_AGENT_LOG_LEVEL"
SHELL_ENV = "SPUFF_AGENT_SHELL"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 7575
DEFAULT_SHELL = "sh"
_SECTION_KEYS = ("agent", "paths")
_AGENT_KEYS = ("host", "port", "username", "shell", "log_level")


def _ensure_dict(value: object, *, label: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{label} must be a table/object.")
    return dict(value)


def _ensure_optional_str(value: object, *, label: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{label} must be a string.")
    return value


def parse_port(value: object, *, default: int = DEFAULT_PORT) -> int:
    """Parse a listen port, falling back to ``default`` for anything unusable."""
    if value is None or isinstance(value, bool):
        return default
    try:
        port = int(str(value).strip())
    except ValueError:
        return default
    if port <= 0 or port > 65535:
        return default
    return port


@dataclass(frozen=True)
class AgentConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    auth_token: str | None = None
    username: str = ""
    shell: str = DEFAULT_SHELL
    log_level: str = "info"
    paths: AgentPaths = field(default_factory=AgentPaths)

    @property
    def auth_enabled(self) -> bool:
        return self.auth_token is not None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | dict[str, Any]) -> "AgentConfig":
        if not isinstance(payload, Mapping):
            raise ConfigError("Config payload root must be a table/object.")
        raw = dict(payload)
        unknown_sections = [key for key in raw if key not in _SECTION_KEYS]
        if unknown_sections:
            raise ConfigError("Unknown config sections: " + ", ".join(sorted(unknown_sections)))

        agent_raw = _ensure_dict(raw.get("agent"), label="section 'agent'")
        paths_raw = _ensure_dict(raw.get("paths"), label="section 'paths'")
        unknown_keys = [key for key in agent_raw if key not in _AGENT_KEYS]
        if unknown_keys:
            raise ConfigError("Unknown keys in section 'agent': " + ", ".join(sorted(unknown_keys)))
        unknown_paths = [key for key in paths_raw if key not in AgentPaths.field_names()]
        if unknown_paths:
            raise ConfigError("Unknown keys in section 'paths': " + ", ".join(sorted(unknown_paths)))
        for key, value in paths_raw.items():
            _ensure_optional_str(value, label=f"paths.{key}")

        raw_port = agent_raw.get("port")
        if raw_port is not None and (isinstance(raw_port, bool) or not isinstance(raw_port, int)):
            raise ConfigError("agent.port must be an integer.")
        raw_level = _ensure_optional_str(agent_raw.get("log_level"), label="agent.log_level")
        if raw_level is not None and normalize_log_level(raw_level, default="") == "":
            raise ConfigError(f"agent.log_level must be one of: {', '.join(LOG_LEVEL_CHOICES)}.")

        return cls(
            host=_ensure_optional_str(agent_raw.get("host"), label="agent.host") or DEFAULT_HOST,
            port=parse_port(raw_port),
            username=(_ensure_optional_str(agent_raw.get("username"), label="agent.username") or "").strip(),
            shell=_ensure_optional_str(agent_raw.get("shell"), label="agent.shell") or DEFAULT_SHELL,
            log_level=normalize_log_level(raw_level),
            paths=AgentPaths().with_overrides(paths_raw),
        )

    @classmethod
    def from_toml_path(cls, path: str | Path) -> "AgentConfig":
        config_path = Path(path)
        try:
            raw = config_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Unable to read config file {config_path}: {exc}") from exc
        try:
            parsed = tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {config_path}: {exc}") from exc
        return cls.from_dict(parsed)

    def with_environment(self, environ: Mapping[str, str]) -> "AgentConfig":
        token = str(environ.get(TOKEN_ENV) or "")
        port = parse_port(environ.get(PORT_ENV), default=self.port)
        username = resolve_username(
            environ.get(USER_ENV) or self.username,
            self.paths.username_file,
        )
        log_level = normalize_log_level(environ.get(LOG_LEVEL_ENV), default=self.log_level)
        shell = str(environ.get(SHELL_ENV) or "").strip() or self.shell
        return replace(
            self,
            auth_token=token or None,
            port=port,
            username=username,
            log_level=log_level,
            shell=shell,
        )


def load_agent_config(
    config_file: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> AgentConfig:
    base = AgentConfig.from_toml_path(config_file) if config_file else AgentConfig()
    return base.with_environment(os.environ if environ is None else environ)


def load_agent_config_dict(
    payload: Mapping[str, Any] | dict[str, Any],
    *,
    environ: Mapping[str, str] | None = None,
) -> AgentConfig:
    return AgentConfig.from_dict(payload).with_environment(environ or {})


__all__ = [
    "AgentConfig",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "DEFAULT_SHELL",
    "LOG_LEVEL_ENV",
    "PORT_ENV",
    "SHELL_ENV",
    "TOKEN_ENV",
    "USER_ENV",
    "load_agent_config",
    "load_agent_config_dict",
    "parse_port",
]
