"""Exception hierarchy for script-panel.

All exceptions inherit from PanelError.

Hierarchy:
    PanelError (base)
    ├── InputValidationError (caller-bug marker base)
    │   └── FileNameValidationError  ← traversal, separators, length
    ├── UploadNotFoundError          ← file absent from the upload store
    ├── AccessDeniedError            ← admin token mismatch
    ├── RunNotFoundError             ← unknown or already finished run_id
    └── RunFailure (post-acceptance, reported as Error events)
        ├── LaunchError              ← runtime missing or refused to start
        └── RunExecutionError        ← I/O failure while the run was live

Synchronous rejections (the first four groups) are raised to the caller.
RunFailure subclasses never reach the submitter: the supervisor turns them
into a terminal Error event on the run's broadcast channel.
"""

from __future__ import annotations

from typing import Any


class PanelError(Exception):
    """Base exception for all script-panel errors with structured context.

    Attributes:
        message: Human-readable error message
        context: Dictionary of structured error context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class InputValidationError(PanelError):
    """Base for input validation errors (caller bugs, never retried)."""


class FileNameValidationError(InputValidationError):
    """File name rejected.

    Raised when a file name is empty, contains a parent-directory segment,
    a path separator or a NUL byte, or exceeds the length bound.
    """


class UploadNotFoundError(PanelError):
    """Referenced file is not present in the upload store."""


class AccessDeniedError(PanelError):
    """Admin token missing or wrong."""


class RunNotFoundError(PanelError):
    """run_id is unknown or its run already reached a terminal state."""


class RunFailure(PanelError):
    """Base for failures after a run was accepted."""


class LaunchError(RunFailure):
    """Sandbox runtime unavailable or refused to start the process."""


class RunExecutionError(RunFailure):
    """The run failed while live (e.g. reading its output raised)."""
