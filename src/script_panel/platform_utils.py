"""Process handling utilities.

Provides a PID-reuse safe wrapper around asyncio subprocesses (psutil) and
helpers to describe how a process ended.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal

import psutil


def describe_returncode(returncode: int) -> tuple[int | None, str | None]:
    """Split an asyncio returncode into (exit_code, signal_name).

    asyncio reports death-by-signal as a negative returncode. Such a process
    has no exit status, only the signal.

    Example:
        >>> describe_returncode(0)
        (0, None)
        >>> describe_returncode(-9)
        (None, 'SIGKILL')
    """
    if returncode >= 0:
        return returncode, None
    try:
        return None, signal.Signals(-returncode).name
    except ValueError:
        return None, f"SIG{-returncode}"


class ProcessWrapper:
    """PID-reuse safe process wrapper using psutil.

    Wraps asyncio.subprocess.Process with psutil.Process so that a late kill
    can never hit an unrelated process that recycled the PID.
    """

    def __init__(self, async_proc: asyncio.subprocess.Process) -> None:
        self.async_proc = async_proc
        self.psutil_proc: psutil.Process | None = None

        if async_proc.pid:
            with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
                self.psutil_proc = psutil.Process(async_proc.pid)

    async def is_running(self) -> bool:
        """Check if process is still running (PID-reuse safe).

        The psutil call runs in a worker thread so a stuck /proc read cannot
        block the event loop.
        """
        if self.async_proc.returncode is not None:
            return False
        if not self.psutil_proc:
            return True
        try:
            return await asyncio.to_thread(self.psutil_proc.is_running)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return False

    @property
    def pid(self) -> int | None:
        """Process ID."""
        return self.async_proc.pid

    @property
    def returncode(self) -> int | None:
        """Process return code (None if still running)."""
        return self.async_proc.returncode

    @property
    def stdout(self) -> asyncio.StreamReader | None:
        return self.async_proc.stdout

    @property
    def stderr(self) -> asyncio.StreamReader | None:
        return self.async_proc.stderr

    async def wait(self) -> int:
        """Wait for process to complete and return its returncode."""
        return await self.async_proc.wait()

    async def kill(self) -> bool:
        """SIGKILL the process.

        Killing a process that already exited is a no-op, not an error.

        Returns:
            True if a signal was delivered, False if the process was already gone.
        """
        if not await self.is_running():
            return False
        try:
            if self.psutil_proc:
                await asyncio.to_thread(self.psutil_proc.kill)
            else:
                self.async_proc.kill()
        except (psutil.NoSuchProcess, ProcessLookupError):
            return False
        except psutil.AccessDenied:
            # psutil may be denied where the asyncio handle (our own child) is not
            with contextlib.suppress(ProcessLookupError):
                self.async_proc.kill()
        return True
