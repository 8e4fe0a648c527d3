"""Shared test configuration and fixtures for script-panel tests.

Runs go through HostRuntime, which executes the stored file directly on the
host. That exercises launch, output pumping, the watchdog and the broadcast
path end to end without needing docker.
"""

import asyncio
import sys
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest

from script_panel import (
    BroadcastChannel,
    Event,
    ExecutionPolicy,
    PanelConfig,
    RunRegistry,
    RunService,
    SandboxRuntime,
    Subscription,
)

ADMIN_TOKEN = "test-token"

# Drain grace used by test registries; keeps pipe-holding grandchildren cheap
TEST_DRAIN_GRACE_SECONDS = 0.5


class HostRuntime(SandboxRuntime):
    """Runs .py files with the current interpreter and everything else with sh."""

    def build_command(self, run_id: str, policy: ExecutionPolicy, file_name: str) -> list[str]:
        path = str(self.upload_dir / file_name)
        if file_name.endswith(".py"):
            return [sys.executable, "-u", path]
        return ["sh", path]


async def collect_events(subscription: Subscription, timeout: float = 15.0) -> list[Event]:
    """Drain a subscription until its run's channel is closed."""
    async with asyncio.timeout(timeout):
        return [event async for event in subscription]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    """Empty upload directory."""
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def write_script(upload_dir: Path) -> Callable[[str, str], str]:
    """Write a script into the upload directory and return its name.

    Usage:
        def test_something(write_script) -> None:
            name = write_script("hello.py", "print('hi')")
    """

    def _write(name: str, source: str) -> str:
        (upload_dir / name).write_text(source)
        return name

    return _write


@pytest.fixture
def runtime(upload_dir: Path) -> HostRuntime:
    return HostRuntime(upload_dir)


@pytest.fixture
def channel() -> BroadcastChannel:
    return BroadcastChannel()


@pytest.fixture
async def registry(runtime: HostRuntime, channel: BroadcastChannel) -> AsyncGenerator[RunRegistry, None]:
    """RunRegistry on the host runtime; stops leftover runs on teardown."""
    reg = RunRegistry(runtime, channel, drain_grace_seconds=TEST_DRAIN_GRACE_SECONDS)
    yield reg
    await reg.shutdown()


@pytest.fixture
def panel_config(upload_dir: Path) -> PanelConfig:
    return PanelConfig(upload_dir=upload_dir, drain_grace_seconds=TEST_DRAIN_GRACE_SECONDS)


@pytest.fixture
async def service(panel_config: PanelConfig, runtime: HostRuntime) -> AsyncGenerator[RunService, None]:
    """RunService on the host runtime with admin token ADMIN_TOKEN."""
    async with RunService(panel_config, admin_token=ADMIN_TOKEN, runtime=runtime) as svc:
        yield svc
