"""Tests for platform_utils and subprocess_utils.

Covers returncode decoding, the PID-reuse safe ProcessWrapper, incremental
output decoding and background task error logging.
"""

import asyncio
import logging
import sys

import pytest

from script_panel.platform_utils import ProcessWrapper, describe_returncode
from script_panel.subprocess_utils import log_task_exception, pump_stream

# ============================================================================
# describe_returncode
# ============================================================================


class TestDescribeReturncode:
    @pytest.mark.parametrize(
        ("returncode", "expected"),
        [
            (0, (0, None)),
            (1, (1, None)),
            (137, (137, None)),
            (-9, (None, "SIGKILL")),
            (-15, (None, "SIGTERM")),
            (-200, (None, "SIG200")),
        ],
    )
    def test_describe(self, returncode: int, expected: tuple[int | None, str | None]) -> None:
        assert describe_returncode(returncode) == expected


# ============================================================================
# ProcessWrapper
# ============================================================================


async def _spawn(code: str) -> ProcessWrapper:
    proc = await asyncio.create_subprocess_exec(
        sys.executable,
        "-c",
        code,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )
    return ProcessWrapper(proc)


class TestProcessWrapper:
    async def test_kill_running(self) -> None:
        proc = await _spawn("import time; time.sleep(60)")
        assert await proc.is_running()

        assert await proc.kill() is True
        returncode = await asyncio.wait_for(proc.wait(), timeout=10)

        assert describe_returncode(returncode) == (None, "SIGKILL")
        assert not await proc.is_running()

    async def test_kill_exited_is_noop(self) -> None:
        proc = await _spawn("pass")
        assert await asyncio.wait_for(proc.wait(), timeout=10) == 0

        assert await proc.kill() is False
        assert proc.returncode == 0

    async def test_pid_exposed(self) -> None:
        proc = await _spawn("pass")
        assert proc.pid is not None
        assert proc.psutil_proc is not None
        assert proc.psutil_proc.pid == proc.pid
        await proc.wait()


# ============================================================================
# pump_stream
# ============================================================================


def _reader(*parts: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    for part in parts:
        reader.feed_data(part)
    reader.feed_eof()
    return reader


class TestPumpStream:
    async def test_forwards_everything(self) -> None:
        chunks: list[str] = []
        total = await pump_stream(_reader(b"hello\n", b"world\n"), chunks.append)
        assert "".join(chunks) == "hello\nworld\n"
        assert total == 12

    async def test_split_multibyte_character(self) -> None:
        """A character split across reads is emitted whole, never as U+FFFD."""
        chunks: list[str] = []
        await pump_stream(_reader("é!".encode()), chunks.append, chunk_size=1)
        assert chunks == ["é", "!"]

    async def test_invalid_bytes_replaced(self) -> None:
        chunks: list[str] = []
        await pump_stream(_reader(b"ok\xff\xfe"), chunks.append)
        assert "".join(chunks) == "ok\ufffd\ufffd"

    async def test_truncated_tail_flushed(self) -> None:
        chunks: list[str] = []
        await pump_stream(_reader(b"ok\xc3"), chunks.append)
        assert chunks == ["ok", "\ufffd"]

    async def test_empty_stream(self) -> None:
        chunks: list[str] = []
        assert await pump_stream(_reader(), chunks.append) == 0
        assert chunks == []


# ============================================================================
# log_task_exception
# ============================================================================


class TestLogTaskException:
    async def test_failure_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        async def _boom() -> None:
            raise RuntimeError("boom")

        task = asyncio.create_task(_boom(), name="boom-task")
        await asyncio.wait([task])

        with caplog.at_level(logging.ERROR, logger="script_panel"):
            log_task_exception(task)

        assert "Background task failed" in caplog.text
        assert caplog.records[0].task_name == "boom-task"

    async def test_cancelled_ignored(self, caplog: pytest.LogCaptureFixture) -> None:
        task = asyncio.create_task(asyncio.sleep(60))
        task.cancel()
        await asyncio.wait([task])

        with caplog.at_level(logging.ERROR, logger="script_panel"):
            log_task_exception(task)

        assert caplog.records == []
