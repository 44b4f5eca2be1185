from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable

from spuff_core.errors import CommandError, DockerUnavailableError
from spuff_core.shared import clamp_int
from spuff_agent.integrations import run_command


DOCKER_PS_FORMAT = "{{.ID}}\t{{.Names}}\t{{.Image}}\t{{.Status}}\t{{.State}}\t{{.Ports}}\t{{.CreatedAt}}"
DEFAULT_STOP_TIMEOUT_SECONDS = 10
MAX_STOP_TIMEOUT_SECONDS = 600
DOCKER_COMMAND_TIMEOUT_SECONDS = 120.0
MAX_LOG_LINES = 10_000


@dataclass(frozen=True)
class ContainerInfo:
    id: str
    name: str
    image: str
    status: str
    state: str
    ports: list[str]
    created: str


def parse_container_line(line: str) -> ContainerInfo:
    parts = line.split("\t")
    parts += [""] * (7 - len(parts))
    ports = [port.strip() for port in parts[5].split(",") if port.strip()]
    return ContainerInfo(
        id=parts[0],
        name=parts[1],
        image=parts[2],
        status=parts[3],
        state=parts[4],
        ports=ports,
        created=parts[6],
    )


def parse_container_list(output: str) -> list[ContainerInfo]:
    return [parse_container_line(line) for line in output.splitlines() if line]


def _result_payload(success: bool, message: str, stdout: str = "", stderr: str = "") -> dict[str, Any]:
    payload: dict[str, Any] = {"success": success, "message": message}
    if stdout:
        payload["stdout"] = stdout
    if stderr:
        payload["stderr"] = stderr
    return payload


class DockerService:
    """Thin wrapper over the ``docker`` CLI for the container endpoints."""

    def __init__(self, *, logger: logging.Logger, command_runner: Callable[..., Any] = run_command) -> None:
        self._logger = logger
        self._run = command_runner

    def _docker(self, args: list[str]):
        try:
            return self._run(["docker", *args], check=False, timeout=DOCKER_COMMAND_TIMEOUT_SECONDS)
        except CommandError as exc:
            if isinstance(exc.__cause__, FileNotFoundError):
                raise DockerUnavailableError(f"Docker is not available: {exc}") from exc
            raise

    def is_available(self) -> bool:
        try:
            return self._docker(["version"]).returncode == 0
        except (CommandError, DockerUnavailableError):
            return False

    def containers_payload(self) -> dict[str, Any]:
        if not self.is_available():
            return {"available": False, "containers": []}
        try:
            result = self._docker(["ps", "-a", "--format", DOCKER_PS_FORMAT])
        except CommandError as exc:
            raise CommandError(f"Failed to execute docker ps: {exc}") from exc
        if result.returncode != 0:
            raise CommandError((result.stderr or "").strip() or "docker ps failed")
        containers = [asdict(item) for item in parse_container_list(result.stdout)]
        return {"available": True, "containers": containers}

    def container_action(self, action: str, name: str, timeout: Any = None) -> dict[str, Any]:
        if action not in {"start", "stop", "restart"}:
            raise ValueError(f"Unsupported container action: {action}")
        args = [action]
        if action != "start":
            seconds = clamp_int(timeout, default=DEFAULT_STOP_TIMEOUT_SECONDS, maximum=MAX_STOP_TIMEOUT_SECONDS)
            args += ["-t", str(seconds)]
        args.append(name)
        past_tense = {"start": "started", "stop": "stopped", "restart": "restarted"}[action]
        try:
            result = self._docker(args)
        except (CommandError, DockerUnavailableError) as exc:
            return _result_payload(False, f"Failed to execute docker {action}: {exc}")
        if result.returncode != 0:
            self._logger.info(
                "docker %s %s failed: %s",
                action,
                name,
                (result.stderr or "").strip(),
                extra={"component": "docker", "operation": action, "result": "error"},
            )
            return _result_payload(False, f"Failed to {action} container: {result.stderr or ''}")
        return _result_payload(True, f"Container {name} {past_tense}", result.stdout or "", result.stderr or "")

    def container_logs(self, name: str, lines: Any = None, since: str | None = None) -> dict[str, Any]:
        args = ["logs"]
        if lines is not None:
            args += ["--tail", str(clamp_int(lines, default=100, maximum=MAX_LOG_LINES))]
        if since:
            args += ["--since", since]
        args.append(name)
        try:
            result = self._docker(args)
        except CommandError as exc:
            raise CommandError(f"Failed to execute docker logs: {exc}") from exc
        if result.returncode != 0:
            raise CommandError((result.stderr or "").strip() or "docker logs failed")
        # docker writes container stderr to its own stderr
        return {"logs": (result.stdout or "") + (result.stderr or "")}
