from __future__ import annotations

import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from spuff_core.errors import CommandError


@dataclass(frozen=True)
class ShellResult:
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int


def run_command(
    cmd: list[str],
    *,
    cwd: Path | None = None,
    check: bool = True,
    timeout: float | None = None,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    resolved_env: dict[str, str] | None = None
    if env:
        resolved_env = dict(os.environ)
        for key, value in env.items():
            resolved_env[str(key)] = str(value)
    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            check=False,
            text=True,
            errors="replace",
            capture_output=True,
            timeout=timeout,
            env=resolved_env,
        )
    except FileNotFoundError as exc:
        raise CommandError(f"Command not found: {cmd[0]}") from exc
    except subprocess.TimeoutExpired as exc:
        raise CommandError(f"Command timed out ({cmd[0]}) after {timeout}s") from exc
    if check and result.returncode != 0:
        message = (result.stderr or "").strip() or (result.stdout or "").strip()
        raise CommandError(f"Command failed ({cmd[0]}): {message}")
    return result


def run_shell(script: str, *, shell: str = "sh") -> str:
    """Run ``script`` through ``<shell> -c`` and return stdout.

    A non-zero exit raises ``CommandError`` carrying the child's stderr, which is
    what install steps record as their failure reason.
    """
    try:
        result = subprocess.run(
            [shell, "-c", script],
            check=False,
            text=True,
            errors="replace",
            capture_output=True,
        )
    except OSError as exc:
        raise CommandError(str(exc)) from exc
    if result.returncode != 0:
        raise CommandError(result.stderr or f"exit code {result.returncode}")
    return result.stdout


def _kill_process_group(process: subprocess.Popen[str]) -> None:
    try:
        os.killpg(os.getpgid(process.pid), signal.SIGKILL)
    except (ProcessLookupError, PermissionError, OSError):
        try:
            process.kill()
        except OSError:
            return


def run_shell_with_timeout(command: str, *, timeout_seconds: float, shell: str = "sh") -> ShellResult:
    """Run ``command`` via ``<shell> -c`` bounded by a wall-clock timeout.

    Raises ``OSError`` when the child cannot be spawned and
    ``subprocess.TimeoutExpired`` after the whole process group has been killed.
    """
    start_time = time.monotonic()
    process = subprocess.Popen(
        [shell, "-c", command],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        errors="replace",
        start_new_session=True,
    )
    try:
        stdout, stderr = process.communicate(timeout=timeout_seconds)
    except subprocess.TimeoutExpired:
        _kill_process_group(process)
        try:
            process.communicate(timeout=2.0)
        except subprocess.TimeoutExpired:
            pass
        raise
    elapsed_ms = int((time.monotonic() - start_time) * 1000)
    returncode = process.returncode
    # negative return codes mean the child died from a signal
    exit_code = returncode if returncode is not None and returncode >= 0 else -1
    return ShellResult(exit_code=exit_code, stdout=stdout or "", stderr=stderr or "", duration_ms=elapsed_ms)
