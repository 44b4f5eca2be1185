from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any

from spuff_core.errors import LogAccessDeniedError, LogFileNotFoundError
from spuff_core.shared import clamp_int
from spuff_agent.runtime import LogFollower, format_sse, read_last_lines


DEFAULT_LOG_LINES = 100
MAX_LOG_LINES = 10_000
DEFAULT_STREAM_INITIAL_LINES = 10
MAX_STREAM_INITIAL_LINES = 100
STREAM_POLL_INTERVAL_SECONDS = 0.5
STREAM_KEEPALIVE_SECONDS = 15.0
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _starts_with(path: Path, base: Path) -> bool:
    return path.parts[: len(base.parts)] == base.parts


class LogService:
    def __init__(
        self,
        *,
        allowed_log_dir: Path,
        default_log_file: Path,
        logger: logging.Logger,
        poll_interval_seconds: float = STREAM_POLL_INTERVAL_SECONDS,
        keepalive_seconds: float = STREAM_KEEPALIVE_SECONDS,
    ) -> None:
        self._allowed_log_dir = Path(allowed_log_dir)
        self._default_log_file = Path(default_log_file)
        self._logger = logger
        self._poll_interval_seconds = float(poll_interval_seconds)
        self._keepalive_seconds = float(keepalive_seconds)

    def validate_log_path(self, raw_path: str | None) -> Path:
        """Resolve ``raw_path`` and confirm it stays inside the allowed log directory.

        The raw path is checked first so obviously foreign paths never reach the
        filesystem. The canonical path is checked again because symlinks and
        ``..`` components can escape the prefix.
        """
        candidate = Path(raw_path) if raw_path else self._default_log_file
        if not _starts_with(candidate, self._allowed_log_dir):
            raise LogAccessDeniedError(f"Access denied: path must be within {self._allowed_log_dir}")
        try:
            canonical = candidate.resolve(strict=True)
        except (OSError, RuntimeError, ValueError) as exc:
            raise LogFileNotFoundError(f"File not found: {exc}") from exc
        try:
            canonical_base = self._allowed_log_dir.resolve(strict=True)
        except (OSError, RuntimeError):
            canonical_base = self._allowed_log_dir
        if not _starts_with(canonical, canonical_base):
            self._logger.warning(
                "Path traversal attempt detected: '%s' resolved to '%s'",
                candidate,
                canonical,
                extra={"component": "logs", "operation": "validate_path", "result": "denied"},
            )
            raise LogAccessDeniedError("Access denied: path traversal detected")
        return canonical

    def read_lines(self, raw_path: str | None, lines: Any = None) -> dict[str, Any]:
        count = clamp_int(lines, default=DEFAULT_LOG_LINES, maximum=MAX_LOG_LINES)
        validated = self.validate_log_path(raw_path)
        try:
            collected = read_last_lines(validated, count)
        except OSError as exc:
            self._logger.warning(
                "Failed to read log file '%s': %s",
                validated,
                exc,
                extra={"component": "logs", "operation": "read_lines", "result": "error"},
            )
            raise LogFileNotFoundError(f"Cannot read file: {exc}") from exc
        return {"lines": collected}

    def open_stream(
        self,
        raw_path: str | None,
        initial_lines: Any = None,
        *,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[str]:
        """Validate eagerly, then return the SSE frame generator for the tail."""
        count = clamp_int(initial_lines, default=DEFAULT_STREAM_INITIAL_LINES, maximum=MAX_STREAM_INITIAL_LINES)
        validated = self.validate_log_path(raw_path)
        return self._stream_frames(validated, count, is_disconnected)

    async def _stream_frames(
        self,
        path: Path,
        initial_lines: int,
        is_disconnected: Callable[[], Awaitable[bool]] | None,
    ) -> AsyncIterator[str]:
        self._logger.debug(
            "Log stream opened for %s",
            path,
            extra={"component": "logs", "operation": "stream", "result": "opened"},
        )
        try:
            follower, snapshot = await asyncio.to_thread(LogFollower.open, path, initial_lines=initial_lines)
        except OSError as exc:
            yield format_sse("error", f"Failed to read file: {exc}")
            follower, snapshot = LogFollower(path), []
        for line in snapshot:
            yield format_sse("initial", line)

        last_frame_at = time.monotonic()
        try:
            while True:
                await asyncio.sleep(self._poll_interval_seconds)
                if is_disconnected is not None and await is_disconnected():
                    break
                events = await asyncio.to_thread(follower.poll)
                for event, data in events:
                    yield format_sse(event, data)
                    last_frame_at = time.monotonic()
                if time.monotonic() - last_frame_at >= self._keepalive_seconds:
                    yield ": keep-alive\n\n"
                    last_frame_at = time.monotonic()
        finally:
            self._logger.debug(
                "Log stream closed for %s",
                path,
                extra={"component": "logs", "operation": "stream", "result": "closed"},
            )
