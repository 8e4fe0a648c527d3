"""Sandbox runtimes.

A runtime turns (run_id, policy, file name) into a child process. The
isolation itself is the container runtime's job: DockerRuntime only
expresses the resource/isolation policy as `docker run` flags.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from script_panel._logging import get_logger, run_ref
from script_panel.constants import CONTAINER_NAME_PREFIX
from script_panel.exceptions import LaunchError
from script_panel.platform_utils import ProcessWrapper
from script_panel.resource_cleanup import cleanup_container

if TYPE_CHECKING:
    from script_panel.config import PanelConfig
    from script_panel.models import ExecutionPolicy

logger = get_logger(__name__)


class SandboxRuntime:
    """Base runtime: launches build_command() with piped stdout/stderr."""

    def __init__(self, upload_dir: Path) -> None:
        self.upload_dir = upload_dir

    def build_command(self, run_id: str, policy: ExecutionPolicy, file_name: str) -> list[str]:
        raise NotImplementedError

    async def launch(self, run_id: str, policy: ExecutionPolicy, file_name: str) -> ProcessWrapper:
        """Start the run's process.

        stdin is /dev/null; the child gets its own session so signals aimed
        at the panel do not reach it.

        Raises:
            LaunchError: the runtime binary is missing or refused to start.
        """
        argv = self.build_command(run_id, policy, file_name)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.upload_dir,
                start_new_session=True,
            )
        except OSError as e:
            raise LaunchError(
                f"Failed to launch sandbox: {e}",
                context={"run": run_ref(run_id), "runtime": argv[0], "errno": e.errno},
            ) from e
        return ProcessWrapper(proc)

    async def terminate(self, run_id: str) -> None:
        """Extra teardown after the process was killed. Default: nothing."""


class DockerRuntime(SandboxRuntime):
    """Runs each file in a throwaway, locked-down docker container.

    Policy expressed to docker:
        --rm                 remove the container after exit
        --read-only          read-only root filesystem
        --network none       no network
        --memory/--cpus      bounded memory and CPU share
        --pids-limit         bounded process count
        --cap-drop ALL       no capabilities
        no-new-privileges    no setuid escalation
        --user               unprivileged uid:gid
        -v dir:mount:ro      upload directory, read-only, as working dir
    """

    def __init__(self, config: PanelConfig) -> None:
        super().__init__(config.upload_dir)
        self.config = config

    @staticmethod
    def container_name(run_id: str) -> str:
        return f"{CONTAINER_NAME_PREFIX}{run_id}"

    def build_command(self, run_id: str, policy: ExecutionPolicy, file_name: str) -> list[str]:
        cfg = self.config
        upload_dir = Path(cfg.upload_dir).resolve()
        return [
            cfg.docker_bin,
            "run",
            "--rm",
            "--name",
            self.container_name(run_id),
            "--read-only",
            "--network",
            "none",
            "--memory",
            cfg.memory_limit,
            "--cpus",
            str(cfg.cpu_limit),
            "--pids-limit",
            str(cfg.pids_limit),
            "--cap-drop",
            "ALL",
            "--security-opt",
            "no-new-privileges",
            "--user",
            cfg.sandbox_user,
            "-v",
            f"{upload_dir}:{cfg.mount_point}:ro",
            "-w",
            cfg.mount_point,
            policy.image,
            "sh",
            "-c",
            policy.render_command(file_name),
        ]

    async def terminate(self, run_id: str) -> None:
        """Kill the container; killing the docker client alone leaves it running."""
        await cleanup_container(self.config.docker_bin, self.container_name(run_id), run_ref(run_id))
