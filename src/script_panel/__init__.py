"""script-panel: run uploaded scripts in docker sandboxes and stream their output live.

Quick Start:
    ```python
    from script_panel import RunService, Settings

    async with RunService.from_settings(Settings()) as service:
        name = await service.upload("hello.py", b"print('hi')\\n")
        run_id = await service.submit_run(name, timeout_seconds=10, token="...")
        async with service.subscribe(run_id) as events:
            async for event in events:
                print(event.type, event.model_dump())
        # start, stdout {"chunk": "hi\\n"}, exit {"exit_code": 0, ...}
    ```

Pipeline:
    policy.resolve()        file extension → image + command
    RunRegistry.submit()    allocate run_id, open its broadcast topic
    ProcessSupervisor       launch via the runtime, pump stdout/stderr,
                            enforce the timeout, publish one terminal event
    BroadcastChannel        fan events out to every attached Subscription

Isolation (no network, read-only mounts, memory/CPU/PID limits,
unprivileged user) is enforced by docker; this package only asks for it.

Requirements:
    - Python 3.12+
    - docker CLI on PATH (or SCRIPT_PANEL_DOCKER_BIN)
"""

from script_panel.broadcast import BroadcastChannel, Subscription
from script_panel.config import PanelConfig
from script_panel.events import ErrorEvent, Event, ExitEvent, RunEvent, StartEvent, StderrEvent, StdoutEvent
from script_panel.exceptions import (
    AccessDeniedError,
    FileNameValidationError,
    InputValidationError,
    LaunchError,
    PanelError,
    RunExecutionError,
    RunFailure,
    RunNotFoundError,
    UploadNotFoundError,
)
from script_panel.models import ExecutionPolicy, FileInfo, RunRequest, RunSession, RunState
from script_panel.policy import resolve
from script_panel.registry import RunRegistry
from script_panel.runtime import DockerRuntime, SandboxRuntime
from script_panel.service import RunService
from script_panel.settings import Settings
from script_panel.supervisor import ProcessSupervisor

__all__ = [
    "AccessDeniedError",
    "BroadcastChannel",
    "DockerRuntime",
    "ErrorEvent",
    "Event",
    "ExecutionPolicy",
    "ExitEvent",
    "FileInfo",
    "FileNameValidationError",
    "InputValidationError",
    "LaunchError",
    "PanelConfig",
    "PanelError",
    "ProcessSupervisor",
    "RunEvent",
    "RunExecutionError",
    "RunFailure",
    "RunNotFoundError",
    "RunRegistry",
    "RunRequest",
    "RunService",
    "RunSession",
    "RunState",
    "SandboxRuntime",
    "Settings",
    "StartEvent",
    "StderrEvent",
    "StdoutEvent",
    "Subscription",
    "UploadNotFoundError",
    "resolve",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("script-panel")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
