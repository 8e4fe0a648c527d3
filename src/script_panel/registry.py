"""Run registry: the process-wide table of active runs.

An entry exists from submission (before the process is launched, so the
run_id can be subscribed to right away) until the run's terminal event has
been published and its broadcast topic torn down. The registry is the single
source of truth for "is this run_id active".

Mutations happen synchronously on the event loop, so concurrent submissions
and completions cannot interleave inside an insert or a removal.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING
from uuid import uuid4

from script_panel import policy as policy_resolver
from script_panel._logging import get_logger, run_ref
from script_panel.constants import READER_DRAIN_GRACE_SECONDS
from script_panel.exceptions import RunNotFoundError
from script_panel.models import RunSession
from script_panel.supervisor import ProcessSupervisor

if TYPE_CHECKING:
    from script_panel.broadcast import BroadcastChannel, Subscription
    from script_panel.models import RunRequest
    from script_panel.runtime import SandboxRuntime

logger = get_logger(__name__)


def _new_run_id() -> str:
    return uuid4().hex


class RunRegistry:
    """Maps run_id to the supervisor of an active run."""

    def __init__(
        self,
        runtime: SandboxRuntime,
        channel: BroadcastChannel,
        *,
        drain_grace_seconds: float = READER_DRAIN_GRACE_SECONDS,
        id_factory: Callable[[], str] = _new_run_id,
    ) -> None:
        self._runtime = runtime
        self._channel = channel
        self._drain_grace_seconds = drain_grace_seconds
        self._id_factory = id_factory
        self._runs: dict[str, ProcessSupervisor] = {}

    def __len__(self) -> int:
        return len(self._runs)

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._runs

    def submit(self, request: RunRequest) -> str:
        """Register a run and launch it in the background.

        Must be called from a running event loop. Returns as soon as the run
        is registered; the caller never waits for the process.

        Returns:
            The new run_id.
        """
        run_id = self._allocate_run_id()
        policy = policy_resolver.resolve(request.file_name)
        session = RunSession(run_id=run_id, file_name=request.file_name, timeout_seconds=request.timeout_seconds)
        supervisor = ProcessSupervisor(
            session,
            policy,
            self._runtime,
            self._channel,
            drain_grace_seconds=self._drain_grace_seconds,
            on_finished=self._on_finished,
        )

        self._channel.open(run_id)
        self._runs[run_id] = supervisor
        supervisor.start()
        logger.debug(
            "Run registered",
            extra={"run": run_ref(run_id), "image": policy.image, "active_runs": len(self._runs)},
        )
        return run_id

    def _allocate_run_id(self) -> str:
        while True:
            run_id = self._id_factory()
            if run_id not in self._runs and not self._channel.is_open(run_id):
                return run_id
            logger.warning("run_id collision, regenerating")

    def _on_finished(self, supervisor: ProcessSupervisor) -> None:
        run_id = supervisor.run_id
        self._channel.close(run_id)
        self._runs.pop(run_id, None)

    def _lookup(self, run_id: str) -> ProcessSupervisor:
        supervisor = self._runs.get(run_id)
        if supervisor is None or supervisor.finished:
            raise RunNotFoundError("Run not found or already finished", context={"run": run_ref(run_id)})
        return supervisor

    def get(self, run_id: str) -> RunSession:
        """Snapshot of an active run's state.

        Raises:
            RunNotFoundError: unknown or finished run.
        """
        return self._lookup(run_id).session.model_copy()

    def subscribe(self, run_id: str) -> Subscription:
        """Attach an observer to an active run.

        Raises:
            RunNotFoundError: unknown or finished run.
        """
        self._lookup(run_id)
        return self._channel.subscribe(run_id)

    async def stop(self, run_id: str) -> None:
        """Terminate an active run (an early timeout).

        Raises:
            RunNotFoundError: unknown or finished run, or already terminating.
        """
        supervisor = self._lookup(run_id)
        if not await supervisor.stop():
            raise RunNotFoundError("Run is already finishing", context={"run": run_ref(run_id)})

    async def wait(self, run_id: str) -> RunSession:
        """Wait for an active run to finish and return its final state.

        Raises:
            RunNotFoundError: unknown or finished run.
        """
        return await self._lookup(run_id).wait()

    async def shutdown(self) -> None:
        """Stop every active run and wait for all of them to finish."""
        supervisors = list(self._runs.values())
        if not supervisors:
            return
        logger.info("Stopping active runs", extra={"active_runs": len(supervisors)})
        await asyncio.gather(*(s.stop() for s in supervisors))
        await asyncio.gather(*(s.wait() for s in supervisors))
