"""Best-effort cleanup helpers for run teardown.

Cleanup operations log errors but never raise: they run on paths that are
already finishing a run and must not replace its terminal event.
"""

from __future__ import annotations

import asyncio
import contextlib

from script_panel._logging import get_logger
from script_panel.constants import CONTAINER_KILL_TIMEOUT_SECONDS

logger = get_logger(__name__)


async def cancel_task(task: asyncio.Task[object] | None) -> None:
    """Cancel *task* and wait for it to finish. None-safe, idempotent."""
    if task is None or task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


async def cleanup_container(
    docker_bin: str,
    container_name: str,
    context_id: str,
    timeout: float = CONTAINER_KILL_TIMEOUT_SECONDS,
) -> bool:
    """Force-remove a run's container (`docker kill`).

    Killing the `docker run` client does not stop the container it started,
    so a timed-out run also needs this. A container that is already gone
    makes docker exit non-zero; that is logged at debug level only.

    Args:
        docker_bin: Container runtime CLI
        container_name: Name given to the container at launch
        context_id: Redacted run reference for logging
        timeout: Seconds to wait for the CLI

    Returns:
        True if the runtime confirmed the kill, False otherwise
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            docker_bin,
            "kill",
            container_name,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.warning(
            "Container kill could not be started",
            extra={"context_id": context_id, "error": str(e)},
        )
        return False

    try:
        async with asyncio.timeout(timeout):
            _, stderr = await proc.communicate()
    except TimeoutError:
        logger.error(
            "Container kill timed out",
            extra={"context_id": context_id, "timeout": timeout},
        )
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        # Reap the killed CLI so it does not linger as a zombie
        with contextlib.suppress(TimeoutError):
            async with asyncio.timeout(timeout):
                await proc.wait()
        return False

    if proc.returncode != 0:
        logger.debug(
            "Container kill reported failure (container likely gone)",
            extra={"context_id": context_id, "stderr": stderr.decode(errors="replace")[:500]},
        )
        return False

    logger.debug("Container killed", extra={"context_id": context_id})
    return True
