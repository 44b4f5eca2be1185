from __future__ import annotations

import os
from collections import deque
from pathlib import Path


ROTATION_MESSAGE = "File was truncated or rotated, reading from start"


def _strip_line_ending(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


def read_last_lines(path: Path, count: int) -> list[str]:
    """Return the last ``count`` lines of ``path`` holding at most ``count`` lines in memory."""
    if count <= 0:
        # still surface open errors for a missing or unreadable file
        with Path(path).open("rb"):
            return []
    ring: deque[str] = deque(maxlen=count)
    with Path(path).open("rb") as fp:
        for raw_line in fp:
            ring.append(_strip_line_ending(raw_line.decode("utf-8", errors="replace")))
    return list(ring)


def format_sse(event: str, data: str) -> str:
    body = "".join(f"data: {line}\n" for line in str(data).split("\n"))
    return f"event: {event}\n{body}\n"


class LogFollower:
    """Size-polling follower that reports appended lines and truncation."""

    def __init__(self, path: Path, *, last_size: int = 0) -> None:
        self.path = Path(path)
        self.last_size = int(last_size)

    @classmethod
    def open(cls, path: Path, *, initial_lines: int) -> tuple["LogFollower", list[str]]:
        try:
            size = os.stat(path).st_size
        except OSError:
            size = 0
        lines = read_last_lines(path, initial_lines)
        return cls(path, last_size=size), lines

    def poll(self) -> list[tuple[str, str]]:
        try:
            current_size = os.stat(self.path).st_size
        except OSError:
            # tolerate the gap while a rotated file is recreated
            return []
        if current_size < self.last_size:
            self.last_size = 0
            return [("info", ROTATION_MESSAGE)]
        if current_size == self.last_size:
            return []
        try:
            with self.path.open("rb") as fp:
                fp.seek(self.last_size)
                chunk = fp.read(current_size - self.last_size)
        except OSError as exc:
            return [("error", f"Failed to read file: {exc}")]
        # an unterminated tail stays unread until its newline lands
        complete = chunk.rfind(b"\n") + 1
        if not complete:
            return []
        self.last_size += complete
        events: list[tuple[str, str]] = []
        for line in chunk[:complete].decode("utf-8", errors="replace").split("\n"):
            line = _strip_line_ending(line)
            if line:
                events.append(("line", line))
        return events
