"""RunService - the call surface a transport layer (HTTP, websocket, CLI) uses.

Example:
    ```python
    from script_panel import RunService, Settings

    async with RunService.from_settings(Settings()) as service:
        run_id = await service.submit_run("1718000000000_..._hello.py", timeout_seconds=10, token=token)
        async with service.subscribe(run_id) as events:
            async for event in events:
                print(event.model_dump_json())
    ```

Synchronous rejections (bad name, missing file, wrong token) raise. Once a
run_id is returned, every outcome (including launch failures) is visible
only on the run's event stream.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Self

from script_panel._logging import get_logger, run_ref
from script_panel.access import AccessGate
from script_panel.broadcast import BroadcastChannel
from script_panel.models import RunRequest
from script_panel.registry import RunRegistry
from script_panel.runtime import DockerRuntime
from script_panel.storage import UploadStore

if TYPE_CHECKING:
    from script_panel.broadcast import Subscription
    from script_panel.config import PanelConfig
    from script_panel.models import FileInfo, RunSession
    from script_panel.runtime import SandboxRuntime
    from script_panel.settings import Settings

logger = get_logger(__name__)


class RunService:
    """Wires the access gate, upload store and run registry together."""

    def __init__(
        self,
        config: PanelConfig,
        *,
        admin_token: str,
        runtime: SandboxRuntime | None = None,
    ) -> None:
        self.config = config
        self.gate = AccessGate(admin_token)
        self.store = UploadStore(Path(config.upload_dir))
        self.channel = BroadcastChannel(queue_depth=config.subscriber_queue_depth)
        self.registry = RunRegistry(
            runtime if runtime is not None else DockerRuntime(config),
            self.channel,
            drain_grace_seconds=config.drain_grace_seconds,
        )

    @classmethod
    def from_settings(cls, settings: Settings, *, runtime: SandboxRuntime | None = None) -> Self:
        return cls(settings.to_config(), admin_token=settings.admin_token.get_secret_value(), runtime=runtime)

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    async def upload(self, original_name: str, data: bytes) -> str:
        """Store an uploaded script; returns its stored name."""
        return await self.store.save(original_name, data)

    async def upload_file(self, source: Path) -> str:
        """Store a local file; returns its stored name."""
        return await self.store.save_file(source)

    async def list_files(self) -> list[FileInfo]:
        return await self.store.list_files()

    async def delete_file(self, file_name: str, *, token: str | None) -> None:
        """Delete a stored file.

        Raises:
            AccessDeniedError, FileNameValidationError, UploadNotFoundError
        """
        self.gate.check(token)
        await self.store.delete(file_name)

    # -------------------------------------------------------------------------
    # Runs
    # -------------------------------------------------------------------------

    async def submit_run(self, file_name: Any, timeout_seconds: Any = None, *, token: str | None) -> str:
        """Accept a run of a stored file and return its run_id.

        The timeout is clamped to 1-300 seconds; None, zero or unparseable
        values use the configured default. The call returns before the
        process is launched.

        Raises:
            AccessDeniedError: wrong admin token.
            FileNameValidationError: traversal, separators or name too long.
            UploadNotFoundError: no such stored file.
        """
        self.gate.check(token)
        request = RunRequest.parse(file_name, timeout_seconds, default_timeout=self.config.default_timeout_seconds)
        await self.store.resolve(request.file_name)
        run_id = self.registry.submit(request)
        logger.info(
            "Run accepted",
            extra={"run": run_ref(run_id), "file_name": request.file_name, "timeout_seconds": request.timeout_seconds},
        )
        return run_id

    def subscribe(self, run_id: str) -> Subscription:
        """Attach to a run's live events. The run_id is the only credential.

        Raises:
            RunNotFoundError: unknown or finished run.
        """
        return self.registry.subscribe(run_id)

    def get_run(self, run_id: str) -> RunSession:
        return self.registry.get(run_id)

    async def stop_run(self, run_id: str, *, token: str | None) -> None:
        """Terminate a run early (reported like a timeout).

        Raises:
            AccessDeniedError, RunNotFoundError
        """
        self.gate.check(token)
        await self.registry.stop(run_id)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        await self.store.ensure_dir()

    async def close(self) -> None:
        """Stop all active runs and end every subscription."""
        await self.registry.shutdown()
        self.channel.close_all()

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: object,
    ) -> None:
        await self.close()
