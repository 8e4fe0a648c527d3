"""Run event protocol.

Every event carries the run_id it belongs to. Per run the sequence is:
exactly one StartEvent, then any number of StdoutEvent/StderrEvent, then
exactly one terminal event (ExitEvent or ErrorEvent). Nothing follows the
terminal event.

Wire format: one JSON object per event, discriminated by ``type``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter


def utcnow() -> datetime:
    return datetime.now(UTC)


class RunEvent(BaseModel):
    """Base class for all run events."""

    type: str = Field(description="Event type")
    run_id: str = Field(description="Run the event belongs to")

    @property
    def is_terminal(self) -> bool:
        return False


class StartEvent(RunEvent):
    """The run was accepted and its launch attempted."""

    type: Literal["start"] = "start"  # type: ignore[assignment]
    file_name: str = Field(description="Stored file being run")
    started_at: datetime = Field(default_factory=utcnow)


class StdoutEvent(RunEvent):
    """One chunk read from the process's standard output."""

    type: Literal["stdout"] = "stdout"  # type: ignore[assignment]
    chunk: str


class StderrEvent(RunEvent):
    """One chunk read from the process's standard error."""

    type: Literal["stderr"] = "stderr"  # type: ignore[assignment]
    chunk: str


class ExitEvent(RunEvent):
    """Terminal: the process is gone.

    A timed-out (or stopped) run reports exit_code=None, signal="SIGKILL"
    and killed=True. A process that died from a signal on its own reports
    the signal with killed=False.
    """

    type: Literal["exit"] = "exit"  # type: ignore[assignment]
    exit_code: int | None = Field(default=None, description="Exit status (None when signalled)")
    signal: str | None = Field(default=None, description="Terminating signal name")
    killed: bool = Field(default=False, description="Terminated by the watchdog or a stop request")
    finished_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return True


class ErrorEvent(RunEvent):
    """Terminal: the run could not be launched or failed while live."""

    type: Literal["error"] = "error"  # type: ignore[assignment]
    error: str = Field(description="Error description")

    @property
    def is_terminal(self) -> bool:
        return True


Event = Annotated[
    StartEvent | StdoutEvent | StderrEvent | ExitEvent | ErrorEvent,
    Field(discriminator="type"),
]

# Cached: TypeAdapter construction is expensive
EVENT_ADAPTER: TypeAdapter[Event] = TypeAdapter(Event)


def parse_event(data: str | bytes) -> Event:
    """Parse one JSON-encoded event."""
    return EVENT_ADAPTER.validate_json(data)
