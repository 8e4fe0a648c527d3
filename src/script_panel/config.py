"""Panel configuration for script-panel.

PanelConfig carries everything the run pipeline needs: where uploads live,
which container runtime to call, the resource policy handed to it and the
supervision/broadcast limits.

Example:
    ```python
    from script_panel import PanelConfig, RunService

    config = PanelConfig(upload_dir=Path("./uploads"), memory_limit="256m")
    async with RunService(config, admin_token="s3cret") as service:
        run_id = await service.submit_run("hello.py", timeout_seconds=10, token="s3cret")
    ```
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from script_panel import constants


class PanelConfig(BaseModel):
    """Configuration for the run pipeline.

    Attributes:
        upload_dir: Directory holding uploaded scripts. Mounted read-only
            into every sandbox.
        docker_bin: Container runtime CLI used to launch sandboxes.
        memory_limit: Container memory limit (docker syntax, e.g. "400m").
        cpu_limit: Container CPU share.
        pids_limit: Maximum processes inside the container.
        sandbox_user: uid:gid the script runs as.
        mount_point: Mount point (and working directory) of the upload dir
            inside the container.
        default_timeout_seconds: Timeout when a request gives none.
        subscriber_queue_depth: Per-subscriber buffered events before the
            oldest is dropped.
        drain_grace_seconds: Time readers may keep draining after exit.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    upload_dir: Path = Field(
        default=Path("uploads"),
        description="Directory holding uploaded scripts",
    )
    docker_bin: str = Field(
        default=constants.DEFAULT_DOCKER_BIN,
        min_length=1,
        description="Container runtime CLI",
    )

    # Resource policy (enforced by the container runtime, not by us)
    memory_limit: str = Field(
        default=constants.SANDBOX_MEMORY_LIMIT,
        pattern=r"^[0-9]+[bkmg]?$",
        description="Container memory limit",
    )
    cpu_limit: float = Field(
        default=constants.SANDBOX_CPU_LIMIT,
        gt=0,
        le=64,
        description="Container CPU share",
    )
    pids_limit: int = Field(
        default=constants.SANDBOX_PIDS_LIMIT,
        ge=1,
        description="Maximum PIDs inside the container",
    )
    sandbox_user: str = Field(
        default=constants.SANDBOX_USER,
        pattern=r"^[0-9]+:[0-9]+$",
        description="uid:gid inside the container",
    )
    mount_point: str = Field(
        default=constants.SANDBOX_MOUNT_POINT,
        pattern=r"^/",
        description="Read-only mount point of the upload directory",
    )

    # Supervision
    default_timeout_seconds: int = Field(
        default=constants.DEFAULT_TIMEOUT_SECONDS,
        ge=constants.MIN_TIMEOUT_SECONDS,
        le=constants.MAX_TIMEOUT_SECONDS,
        description="Default run timeout in seconds",
    )
    drain_grace_seconds: float = Field(
        default=constants.READER_DRAIN_GRACE_SECONDS,
        gt=0,
        description="Output drain grace period after process exit",
    )

    # Broadcast
    subscriber_queue_depth: int = Field(
        default=constants.SUBSCRIBER_QUEUE_DEPTH,
        ge=1,
        description="Per-subscriber event queue depth",
    )
