"""Data models for script-panel."""

from __future__ import annotations

import math
import shlex
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from script_panel.constants import (
    DEFAULT_TIMEOUT_SECONDS,
    MAX_FILE_NAME_LENGTH,
    MAX_TIMEOUT_SECONDS,
    MIN_TIMEOUT_SECONDS,
)
from script_panel.exceptions import FileNameValidationError


class RunState(str, Enum):
    """Lifecycle states of a run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    KILLED = "killed"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.KILLED, RunState.ERRORED)


def clamp_timeout(value: Any, default: int = DEFAULT_TIMEOUT_SECONDS) -> int:
    """Coerce a requested timeout into [MIN_TIMEOUT_SECONDS, MAX_TIMEOUT_SECONDS].

    None, non-numeric strings, NaN and zero fall back to *default*, matching
    the lenient parsing the upload panel has always applied to form input.
    Fractional values are truncated ("2.5" -> 2) and infinities saturate at
    the bounds.
    """
    if isinstance(value, bool):
        value = None
    if isinstance(value, int):
        seconds: float = value
    else:
        try:
            seconds = float(value)
        except (TypeError, ValueError, OverflowError):
            seconds = 0
        if math.isnan(seconds):
            seconds = 0
        elif not math.isinf(seconds):
            seconds = math.trunc(seconds)
    if seconds == 0:
        seconds = default
    return int(min(max(seconds, MIN_TIMEOUT_SECONDS), MAX_TIMEOUT_SECONDS))


class RunRequest(BaseModel):
    """A request to run one stored file."""

    model_config = ConfigDict(frozen=True)

    file_name: str = Field(min_length=1, max_length=MAX_FILE_NAME_LENGTH, description="Stored file name")
    timeout_seconds: int = Field(
        default=DEFAULT_TIMEOUT_SECONDS,
        ge=MIN_TIMEOUT_SECONDS,
        le=MAX_TIMEOUT_SECONDS,
        description="Run timeout in seconds (clamped to 1-300)",
    )

    @field_validator("file_name")
    @classmethod
    def validate_file_name(cls, v: str) -> str:
        """Reject traversal, path separators and NUL bytes."""
        if "\x00" in v:
            raise ValueError("File name cannot contain null bytes")
        if ".." in v:
            raise ValueError("File name cannot contain '..'")
        if "/" in v or "\\" in v:
            raise ValueError("File name cannot contain path separators")
        return v

    @field_validator("timeout_seconds", mode="before")
    @classmethod
    def clamp_timeout_seconds(cls, v: Any, info: ValidationInfo) -> int:
        default = (info.context or {}).get("default_timeout", DEFAULT_TIMEOUT_SECONDS)
        return clamp_timeout(v, default=default)

    @classmethod
    def parse(
        cls, file_name: Any, timeout_seconds: Any = None, *, default_timeout: int = DEFAULT_TIMEOUT_SECONDS
    ) -> RunRequest:
        """Build a request from loosely typed transport input.

        A missing, unparseable or zero *timeout_seconds* becomes *default_timeout*.

        Raises:
            FileNameValidationError: file name missing or invalid.
        """
        try:
            return cls.model_validate(
                {"file_name": file_name, "timeout_seconds": timeout_seconds},
                context={"default_timeout": default_timeout},
            )
        except ValidationError as e:
            reason = e.errors()[0]["msg"] if e.errors() else str(e)
            raise FileNameValidationError(
                f"Invalid file name: {reason}",
                context={"length": len(file_name) if isinstance(file_name, str) else None},
            ) from e


def validate_file_name(file_name: Any) -> str:
    """Check a stored file name without building a full request.

    Raises:
        FileNameValidationError: file name missing or invalid.
    """
    return RunRequest.parse(file_name).file_name


class ExecutionPolicy(BaseModel):
    """How a file is launched inside the sandbox."""

    model_config = ConfigDict(frozen=True)

    image: str = Field(description="Container image")
    command_template: str = Field(description="Shell command; {file} is replaced by the quoted file name")

    def render_command(self, file_name: str) -> str:
        """Shell command line that runs *file_name* from the working directory."""
        return self.command_template.format(file=shlex.quote(file_name))


class RunSession(BaseModel):
    """Mutable state of one run, owned by its ProcessSupervisor."""

    run_id: str
    file_name: str
    timeout_seconds: int
    state: RunState = RunState.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    exit_code: int | None = None
    signal: str | None = None


class FileInfo(BaseModel):
    """Upload store listing entry."""

    name: str = Field(description="Stored file name")
    size: int = Field(description="File size in bytes")
    mtime: float = Field(description="Modification time (epoch seconds)")
