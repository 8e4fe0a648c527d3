"""Process supervision for one sandboxed run.

A ProcessSupervisor owns a run from launch to its terminal event:

    PENDING ──launch ok──► RUNNING ──exit──────────► COMPLETED
       │                      ├──watchdog / stop──► KILLED
       └──launch failed──┐    └──I/O failure──────► ERRORED
                         └────────────────────────► ERRORED

Events go to the run's broadcast channel in causal order: StartEvent when
the launch is attempted, Stdout/Stderr chunks while the process lives, then
exactly one ExitEvent or ErrorEvent.

Single finalizer: only the supervisor's own task publishes the terminal
event, behind a check-and-set ``_terminal`` flag. The watchdog never
publishes; it only kills. Whichever of "process exited" and "deadline
passed" is observed first decides the outcome, and the watchdog is
disarmed as soon as the process is seen to exit, so a finished process is
never signalled late.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from script_panel._logging import get_logger, run_ref
from script_panel.events import ErrorEvent, ExitEvent, StartEvent, StderrEvent, StdoutEvent, utcnow
from script_panel.exceptions import LaunchError, RunExecutionError
from script_panel.models import RunState
from script_panel.platform_utils import describe_returncode
from script_panel.resource_cleanup import cancel_task
from script_panel.subprocess_utils import log_task_exception, pump_stream

if TYPE_CHECKING:
    from collections.abc import Callable

    from script_panel.broadcast import BroadcastChannel
    from script_panel.events import Event
    from script_panel.models import ExecutionPolicy, RunSession
    from script_panel.platform_utils import ProcessWrapper
    from script_panel.runtime import SandboxRuntime

logger = get_logger(__name__)


class ProcessSupervisor:
    """Runs one file in the sandbox and reports its lifecycle.

    Attributes:
        session: The run's state. Owned (and only mutated) by this supervisor.
    """

    def __init__(
        self,
        session: RunSession,
        policy: ExecutionPolicy,
        runtime: SandboxRuntime,
        channel: BroadcastChannel,
        *,
        drain_grace_seconds: float,
        on_finished: Callable[[ProcessSupervisor], None] | None = None,
    ) -> None:
        self.session = session
        self._policy = policy
        self._runtime = runtime
        self._channel = channel
        self._drain_grace_seconds = drain_grace_seconds
        self._on_finished = on_finished

        self._proc: ProcessWrapper | None = None
        self._task: asyncio.Task[None] | None = None
        self._watchdog: asyncio.Task[None] | None = None
        self._teardown: asyncio.Task[None] | None = None
        self._finished = asyncio.Event()

        # Termination guards
        self._terminal = False
        self._kill_requested = False

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def run_id(self) -> str:
        return self.session.run_id

    @property
    def state(self) -> RunState:
        return self.session.state

    @property
    def finished(self) -> bool:
        """Whether the terminal event has been published."""
        return self._terminal

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def start(self) -> str:
        """Launch the run in the background and return its run_id immediately."""
        if self._task is not None:
            raise RuntimeError("Supervisor already started")
        self._task = asyncio.create_task(self._run(), name=f"run-{run_ref(self.run_id)}")
        self._task.add_done_callback(log_task_exception)
        return self.run_id

    async def stop(self) -> bool:
        """Terminate the run now.

        Same path as the timeout watchdog firing, only earlier.

        Returns:
            False if the run already finished or a termination is under way.
        """
        return await self._expire(reason="stopped")

    async def wait(self) -> RunSession:
        """Wait until the terminal event was published (and teardown finished)."""
        await self._finished.wait()
        if self._teardown is not None:
            await asyncio.shield(self._teardown)
        return self.session

    # -------------------------------------------------------------------------
    # Run task
    # -------------------------------------------------------------------------

    async def _run(self) -> None:
        session = self.session
        session.started_at = utcnow()
        self._publish(StartEvent(run_id=self.run_id, file_name=session.file_name, started_at=session.started_at))

        try:
            proc = await self._runtime.launch(self.run_id, self._policy, session.file_name)
        except LaunchError as e:
            logger.warning("Run failed to launch", extra={"run": run_ref(self.run_id), **e.context})
            self._finish(RunState.ERRORED, ErrorEvent(run_id=self.run_id, error=e.message))
            return
        except asyncio.CancelledError:
            self._finish(RunState.ERRORED, ErrorEvent(run_id=self.run_id, error="Run cancelled"))
            raise

        self._proc = proc
        session.state = RunState.RUNNING
        logger.info(
            "Run started",
            extra={
                "run": run_ref(self.run_id),
                "image": self._policy.image,
                "pid": proc.pid,
                "timeout_seconds": session.timeout_seconds,
            },
        )

        self._watchdog = asyncio.create_task(self._watchdog_loop(), name=f"watchdog-{run_ref(self.run_id)}")
        self._watchdog.add_done_callback(log_task_exception)
        if self._kill_requested:
            # stop() arrived while the launch was in flight
            await self._kill()

        try:
            returncode = await self._supervise(proc)
        except RunExecutionError as e:
            logger.error("Run failed", extra={"run": run_ref(self.run_id), **e.context})
            self._finish(RunState.ERRORED, ErrorEvent(run_id=self.run_id, error=e.message))
            return
        except asyncio.CancelledError:
            await asyncio.shield(proc.kill())
            self._finish(RunState.ERRORED, ErrorEvent(run_id=self.run_id, error="Run cancelled"))
            raise

        exit_code, signal_name = describe_returncode(returncode)
        session.exit_code = exit_code
        session.signal = signal_name
        killed = self._kill_requested and exit_code is None
        self._finish(
            RunState.KILLED if killed else RunState.COMPLETED,
            ExitEvent(run_id=self.run_id, exit_code=exit_code, signal=signal_name, killed=killed),
        )

    async def _supervise(self, proc: ProcessWrapper) -> int:
        """Pump both pipes concurrently until the process exits.

        Returns:
            The process returncode.

        Raises:
            RunExecutionError: reading output failed; the process was killed.
        """
        readers: list[asyncio.Task[int]] = []
        if proc.stdout is not None:
            readers.append(asyncio.create_task(pump_stream(proc.stdout, self._on_stdout)))
        if proc.stderr is not None:
            readers.append(asyncio.create_task(pump_stream(proc.stderr, self._on_stderr)))
        exit_task = asyncio.create_task(proc.wait())

        try:
            pending: set[asyncio.Task[int]] = {exit_task, *readers}
            while not exit_task.done():
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                self._raise_reader_failure(done - {exit_task}, proc)
            self._disarm_watchdog()

            # Process is gone; let readers drain what is left in the pipes.
            # Grandchildren that inherited the pipes can keep them open.
            reader_pending = pending - {exit_task}
            if reader_pending:
                done, still_open = await asyncio.wait(reader_pending, timeout=self._drain_grace_seconds)
                for task in still_open:
                    logger.warning("Output still open after exit, abandoning", extra={"run": run_ref(self.run_id)})
                    await cancel_task(task)
                self._raise_reader_failure(done, proc)
            return exit_task.result()
        except RunExecutionError:
            await proc.kill()
            with contextlib.suppress(TimeoutError):
                async with asyncio.timeout(self._drain_grace_seconds):
                    await asyncio.shield(exit_task)
            raise
        finally:
            for task in readers:
                await cancel_task(task)
            if not exit_task.done():
                await cancel_task(exit_task)

    def _raise_reader_failure(self, tasks: set[asyncio.Task[int]], proc: ProcessWrapper) -> None:
        for task in tasks:
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                raise RunExecutionError(
                    f"Failed reading process output: {exc}",
                    context={"run": run_ref(self.run_id), "pid": proc.pid, "error_type": type(exc).__name__},
                ) from exc

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def _on_stdout(self, chunk: str) -> None:
        self._publish(StdoutEvent(run_id=self.run_id, chunk=chunk))

    def _on_stderr(self, chunk: str) -> None:
        self._publish(StderrEvent(run_id=self.run_id, chunk=chunk))

    def _publish(self, event: Event) -> None:
        if self._terminal:
            return
        self._channel.publish(self.run_id, event)

    # -------------------------------------------------------------------------
    # Termination
    # -------------------------------------------------------------------------

    async def _watchdog_loop(self) -> None:
        await asyncio.sleep(self.session.timeout_seconds)
        # Shielded: disarming must not interrupt a kill already in progress
        await asyncio.shield(self._expire(reason="timeout"))

    def _disarm_watchdog(self) -> None:
        if self._watchdog is not None and self._watchdog is not asyncio.current_task():
            self._watchdog.cancel()

    async def _expire(self, *, reason: str) -> bool:
        """Deadline reached (timeout or stop request): kill the process."""
        if self._terminal or self._kill_requested:
            return False
        if self._proc is not None and self._proc.returncode is not None:
            # Exit already observed, finalization is under way
            return False
        self._kill_requested = True
        logger.info(
            "Terminating run",
            extra={"run": run_ref(self.run_id), "reason": reason, "timeout_seconds": self.session.timeout_seconds},
        )
        if self._proc is not None:
            await self._kill()
        return True

    async def _kill(self) -> None:
        assert self._proc is not None
        delivered = await self._proc.kill()
        if delivered and self._teardown is None:
            self._teardown = asyncio.create_task(self._runtime.terminate(self.run_id))
            self._teardown.add_done_callback(log_task_exception)

    def _finish(self, state: RunState, event: ExitEvent | ErrorEvent) -> bool:
        """Publish the terminal event. Only the first call has any effect."""
        if self._terminal:
            return False
        session = self.session
        session.state = state
        session.finished_at = event.finished_at if isinstance(event, ExitEvent) else utcnow()
        self._disarm_watchdog()
        self._channel.publish(self.run_id, event)
        self._terminal = True
        self._finished.set()

        logger.info(
            "Run finished",
            extra={
                "run": run_ref(self.run_id),
                "state": state.value,
                "exit_code": session.exit_code,
                "signal": session.signal,
            },
        )
        if self._on_finished is not None:
            self._on_finished(self)
        return True
