from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from spuff_core.errors import InvalidPayloadError


class ToolStatusKind(str, Enum):
    PENDING = "pending"
    INSTALLING = "installing"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"


_TERMINAL_KINDS = frozenset({ToolStatusKind.DONE, ToolStatusKind.FAILED, ToolStatusKind.SKIPPED})
_ALLOWED_TRANSITIONS: dict[ToolStatusKind, frozenset[ToolStatusKind]] = {
    ToolStatusKind.PENDING: frozenset({ToolStatusKind.INSTALLING, ToolStatusKind.SKIPPED}),
    ToolStatusKind.INSTALLING: frozenset({ToolStatusKind.DONE, ToolStatusKind.FAILED}),
}


@dataclass(frozen=True)
class ToolStatus:
    """Installation status of one tool; only ``FAILED`` carries a reason."""

    kind: ToolStatusKind
    reason: str | None = None

    @classmethod
    def pending(cls) -> "ToolStatus":
        return cls(ToolStatusKind.PENDING)

    @classmethod
    def installing(cls) -> "ToolStatus":
        return cls(ToolStatusKind.INSTALLING)

    @classmethod
    def done(cls) -> "ToolStatus":
        return cls(ToolStatusKind.DONE)

    @classmethod
    def failed(cls, reason: str) -> "ToolStatus":
        return cls(ToolStatusKind.FAILED, str(reason))

    @classmethod
    def skipped(cls) -> "ToolStatus":
        return cls(ToolStatusKind.SKIPPED)

    @property
    def is_terminal(self) -> bool:
        return self.kind in _TERMINAL_KINDS

    def can_transition_to(self, target: "ToolStatus") -> bool:
        return target.kind in _ALLOWED_TRANSITIONS.get(self.kind, frozenset())

    def to_json(self) -> str | dict[str, str]:
        if self.kind is ToolStatusKind.FAILED:
            return {ToolStatusKind.FAILED.value: self.reason or ""}
        return self.kind.value

    @classmethod
    def from_json(cls, value: Any) -> "ToolStatus":
        if isinstance(value, str):
            try:
                kind = ToolStatusKind(value)
            except ValueError as exc:
                raise ValueError(f"Unknown tool status: {value!r}") from exc
            if kind is ToolStatusKind.FAILED:
                raise ValueError("Failed status requires a reason.")
            return cls(kind)
        if isinstance(value, Mapping) and len(value) == 1:
            (key, reason), = value.items()
            if key == ToolStatusKind.FAILED.value and isinstance(reason, str):
                return cls.failed(reason)
        raise ValueError(f"Unknown tool status: {value!r}")


@dataclass
class ToolEntry:
    id: str
    name: str
    description: str
    status: ToolStatus = field(default_factory=ToolStatus.pending)
    version: str | None = None

    def payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status.to_json(),
        }
        if self.version is not None:
            payload["version"] = self.version
        return payload


SHELL_TOOL_IDS = ("fzf", "bat", "eza", "zoxide", "starship")
AI_TOOL_IDS = ("claude_code", "codex", "opencode")
ENVIRONMENT_CHOICES = ("devbox", "nix")

TOOL_CATALOG: tuple[tuple[str, str, str], ...] = (
    ("docker", "Docker", "Container runtime"),
    ("fzf", "fzf", "Fuzzy finder"),
    ("bat", "bat", "Cat with syntax highlighting"),
    ("eza", "eza", "Modern ls replacement"),
    ("zoxide", "zoxide", "Smarter cd command"),
    ("starship", "Starship", "Cross-shell prompt"),
    ("nodejs", "Node.js", "JavaScript runtime"),
    ("claude_code", "Claude Code", "AI coding assistant (Anthropic)"),
    ("codex", "Codex CLI", "AI coding assistant (OpenAI)"),
    ("opencode", "OpenCode", "Open source AI coding assistant"),
    ("devenv", "Dev Environment", "Devbox or Nix"),
    ("dotfiles", "Dotfiles", "User configuration"),
    ("tailscale", "Tailscale", "Private networking"),
)


def catalog_entries() -> list[ToolEntry]:
    return [ToolEntry(id=tool_id, name=name, description=description) for tool_id, name, description in TOOL_CATALOG]


def _coerce_flag(payload: Mapping[str, Any], key: str, *, default: bool) -> bool:
    value = payload.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise InvalidPayloadError(f"{key} must be a boolean.")
    return value


def _coerce_optional_text(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidPayloadError(f"{key} must be a string or null.")
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class InstallConfig:
    docker: bool = True
    shell_tools: bool = True
    nodejs: bool = True
    claude_code: bool = True
    codex: bool = True
    opencode: bool = True
    environment: str | None = None
    dotfiles: str | None = None
    tailscale: bool = False
    tailscale_authkey: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "InstallConfig":
        if payload is None:
            return cls()
        if not isinstance(payload, Mapping):
            raise InvalidPayloadError("Install request body must be a JSON object.")
        return cls(
            docker=_coerce_flag(payload, "docker", default=True),
            shell_tools=_coerce_flag(payload, "shell_tools", default=True),
            nodejs=_coerce_flag(payload, "nodejs", default=True),
            claude_code=_coerce_flag(payload, "claude_code", default=True),
            codex=_coerce_flag(payload, "codex", default=True),
            opencode=_coerce_flag(payload, "opencode", default=True),
            environment=_coerce_optional_text(payload, "environment"),
            dotfiles=_coerce_optional_text(payload, "dotfiles"),
            tailscale=_coerce_flag(payload, "tailscale", default=False),
            tailscale_authkey=_coerce_optional_text(payload, "tailscale_authkey"),
        )

    def is_enabled(self, tool_id: str) -> bool:
        if tool_id in SHELL_TOOL_IDS:
            return self.shell_tools
        if tool_id == "devenv":
            return self.environment is not None
        if tool_id == "dotfiles":
            return self.dotfiles is not None
        return bool(getattr(self, tool_id, False))


@dataclass
class InstallState:
    started: bool = False
    completed: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None
    tools: list[ToolEntry] = field(default_factory=catalog_entries)

    def copy(self) -> "InstallState":
        return replace(self, tools=[replace(tool) for tool in self.tools])

    def payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "started": self.started,
            "completed": self.completed,
            "tools": [tool.payload() for tool in self.tools],
        }
        if self.started_at is not None:
            payload["started_at"] = self.started_at.isoformat()
        if self.completed_at is not None:
            payload["completed_at"] = self.completed_at.isoformat()
        return payload
