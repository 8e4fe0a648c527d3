"""Subprocess output utilities.

- pump_stream: read a pipe chunk by chunk, decode incrementally, hand each chunk on
- log_task_exception: done-callback that surfaces failures of background tasks
"""

from __future__ import annotations

import asyncio
import codecs
from typing import TYPE_CHECKING

from script_panel._logging import get_logger
from script_panel.constants import OUTPUT_CHUNK_SIZE

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger(__name__)


async def pump_stream(
    reader: asyncio.StreamReader,
    on_chunk: Callable[[str], None],
    *,
    chunk_size: int = OUTPUT_CHUNK_SIZE,
) -> int:
    """Forward everything read from *reader* to *on_chunk* until EOF.

    Chunks are whatever a single read() returns, so boundaries follow the
    writer's flushes rather than lines. Decoding is incremental UTF-8 with
    replacement: a multi-byte character split across two reads is emitted
    whole with the second chunk, and invalid bytes become U+FFFD.

    Both pipes of a process must be pumped concurrently; reading one to EOF
    while the other fills up (64KB pipe buffer) deadlocks the child.

    Args:
        reader: Pipe to drain.
        on_chunk: Called synchronously with each non-empty decoded chunk.
        chunk_size: Maximum bytes per read.

    Returns:
        Total number of bytes read.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    total = 0
    while True:
        data = await reader.read(chunk_size)
        if not data:
            break
        total += len(data)
        text = decoder.decode(data)
        if text:
            on_chunk(text)
    tail = decoder.decode(b"", final=True)
    if tail:
        on_chunk(tail)
    return total


def log_task_exception(task: asyncio.Task[None]) -> None:
    """Log exceptions from background tasks.

    Usage:
        task = asyncio.create_task(some_coroutine())
        task.add_done_callback(log_task_exception)
    """
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background task failed",
            extra={"task_name": task.get_name()},
            exc_info=exc,
        )
