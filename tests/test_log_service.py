from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import pytest

from spuff_core.errors import LogAccessDeniedError, LogFileNotFoundError
from spuff_agent.runtime import LogFollower, format_sse, read_last_lines
from spuff_agent.runtime.tail import ROTATION_MESSAGE
from spuff_agent.services.log_service import LogService


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    base = tmp_path / "log"
    base.mkdir()
    return base


@pytest.fixture
def service(log_dir: Path) -> LogService:
    return LogService(
        allowed_log_dir=log_dir,
        default_log_file=log_dir / "cloud-init-output.log",
        logger=logging.getLogger("spuff_agent.test.logs"),
        poll_interval_seconds=0.01,
        keepalive_seconds=0.05,
    )


def test_read_last_lines_returns_tail_in_order(tmp_path: Path) -> None:
    path = tmp_path / "f.log"
    path.write_text("".join(f"line {index}\n" for index in range(50)), encoding="utf-8")

    assert read_last_lines(path, 3) == ["line 47", "line 48", "line 49"]
    assert len(read_last_lines(path, 1000)) == 50
    assert read_last_lines(path, 0) == []


def test_read_last_lines_handles_crlf_and_missing_newline(tmp_path: Path) -> None:
    path = tmp_path / "f.log"
    path.write_bytes(b"a\r\nb\r\nc")

    assert read_last_lines(path, 5) == ["a", "b", "c"]


def test_format_sse_frames_multiline_data() -> None:
    assert format_sse("line", "a") == "event: line\ndata: a\n\n"
    assert format_sse("info", "a\nb") == "event: info\ndata: a\ndata: b\n\n"


def test_validate_rejects_foreign_prefix(service: LogService, tmp_path: Path) -> None:
    outside = tmp_path / "secret.txt"
    outside.write_text("x", encoding="utf-8")

    with pytest.raises(LogAccessDeniedError, match="path must be within"):
        service.validate_log_path(str(outside))


def test_validate_rejects_dotdot_traversal(service: LogService, log_dir: Path, tmp_path: Path) -> None:
    (tmp_path / "passwd").write_text("root", encoding="utf-8")

    with pytest.raises(LogAccessDeniedError, match="^Access denied: path traversal detected$"):
        service.validate_log_path(f"{log_dir}/../passwd")


def test_validate_rejects_symlink_escape(service: LogService, log_dir: Path, tmp_path: Path) -> None:
    target = tmp_path / "outside.log"
    target.write_text("x", encoding="utf-8")
    (log_dir / "link.log").symlink_to(target)

    with pytest.raises(LogAccessDeniedError, match="path traversal detected"):
        service.validate_log_path(str(log_dir / "link.log"))


def test_validate_missing_file_is_not_found(service: LogService, log_dir: Path) -> None:
    with pytest.raises(LogFileNotFoundError, match="^File not found: "):
        service.validate_log_path(str(log_dir / "nope.log"))


def test_read_lines_uses_default_file(service: LogService, log_dir: Path) -> None:
    (log_dir / "cloud-init-output.log").write_text("one\ntwo\n", encoding="utf-8")

    assert service.read_lines(None, None) == {"lines": ["one", "two"]}


@pytest.mark.parametrize(("requested", "expected"), [(1, 1), (5, 5), (20, 8), (None, 8)])
def test_read_lines_returns_min_of_requested_and_available(
    service: LogService,
    log_dir: Path,
    requested: int | None,
    expected: int,
) -> None:
    path = log_dir / "app.log"
    path.write_text("".join(f"{index}\n" for index in range(8)), encoding="utf-8")

    lines = service.read_lines(str(path), requested)["lines"]

    assert len(lines) == expected
    assert lines == [str(index) for index in range(8)][-expected:]


def test_follower_reports_appends_and_rotation(tmp_path: Path) -> None:
    path = tmp_path / "x.log"
    path.write_text("old\n", encoding="utf-8")
    follower, snapshot = LogFollower.open(path, initial_lines=0)
    assert snapshot == []
    assert follower.poll() == []

    with path.open("a", encoding="utf-8") as fp:
        fp.write("a\n\n")
    assert follower.poll() == [("line", "a")]

    path.write_text("", encoding="utf-8")
    assert follower.poll() == [("info", ROTATION_MESSAGE)]

    with path.open("a", encoding="utf-8") as fp:
        fp.write("b\n")
    assert follower.poll() == [("line", "b")]


def test_follower_tolerates_missing_file(tmp_path: Path) -> None:
    path = tmp_path / "x.log"
    path.write_text("", encoding="utf-8")
    follower, _ = LogFollower.open(path, initial_lines=10)
    os.unlink(path)

    assert follower.poll() == []


def test_open_stream_validates_before_streaming(service: LogService, tmp_path: Path) -> None:
    with pytest.raises(LogAccessDeniedError):
        service.open_stream(str(tmp_path / "elsewhere.log"))


def test_stream_emits_initial_line_and_keepalive_frames(service: LogService, log_dir: Path) -> None:
    path = log_dir / "x.log"
    path.write_text("first\nsecond\n", encoding="utf-8")

    async def collect() -> list[str]:
        polls = 0

        async def is_disconnected() -> bool:
            nonlocal polls
            polls += 1
            if polls == 2:
                with path.open("a", encoding="utf-8") as fp:
                    fp.write("third\n")
            return polls > 12

        frames = []
        async for frame in service.open_stream(str(path), 1, is_disconnected=is_disconnected):
            frames.append(frame)
        return frames

    frames = asyncio.run(collect())

    assert frames[0] == "event: initial\ndata: second\n\n"
    assert "event: line\ndata: third\n\n" in frames
    assert ": keep-alive\n\n" in frames


def test_read_lines_caps_at_ten_thousand(service: LogService, log_dir: Path) -> None:
    path = log_dir / "big.log"
    path.write_text("".join(f"{index}\n" for index in range(10005)), encoding="utf-8")

    lines = service.read_lines(str(path), "20000")["lines"]

    assert len(lines) == 10000
    assert lines[0] == "5"
    assert lines[-1] == "10004"


def test_follower_holds_partial_line_until_newline(tmp_path: Path) -> None:
    path = tmp_path / "x.log"
    path.write_text("", encoding="utf-8")
    follower, _ = LogFollower.open(path, initial_lines=0)

    with path.open("a", encoding="utf-8") as fp:
        fp.write("hel")
    assert follower.poll() == []

    with path.open("a", encoding="utf-8") as fp:
        fp.write("lo\nwor")
    assert follower.poll() == [("line", "hello")]

    with path.open("a", encoding="utf-8") as fp:
        fp.write("ld\n")
    assert follower.poll() == [("line", "world")]


def test_stream_initial_lines_capped_at_one_hundred(service: LogService, log_dir: Path) -> None:
    path = log_dir / "many.log"
    path.write_text("".join(f"{index}\n" for index in range(300)), encoding="utf-8")

    async def collect() -> list[str]:
        async def is_disconnected() -> bool:
            return True

        return [frame async for frame in service.open_stream(str(path), 500, is_disconnected=is_disconnected)]

    frames = asyncio.run(collect())
    initial = [frame for frame in frames if frame.startswith("event: initial\n")]

    assert len(initial) == 100
    assert initial[0] == "event: initial\ndata: 200\n\n"
    assert initial[-1] == "event: initial\ndata: 299\n\n"
