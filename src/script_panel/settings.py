"""Runtime configuration from environment variables."""

from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from script_panel import constants
from script_panel.config import PanelConfig


class Settings(BaseSettings):
    """Runtime configuration from environment variables.

    All settings can be overridden via environment variables with SCRIPT_PANEL_ prefix.
    Example: SCRIPT_PANEL_ADMIN_TOKEN=s3cret
    """

    model_config = SettingsConfigDict(
        env_prefix="SCRIPT_PANEL_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Access gate
    admin_token: SecretStr = SecretStr(constants.DEFAULT_ADMIN_TOKEN)

    # Storage
    upload_dir: Path = Path("uploads")

    # Container runtime
    docker_bin: str = constants.DEFAULT_DOCKER_BIN
    memory_limit: str = constants.SANDBOX_MEMORY_LIMIT
    cpu_limit: float = constants.SANDBOX_CPU_LIMIT
    pids_limit: int = constants.SANDBOX_PIDS_LIMIT

    # Limits
    default_timeout_seconds: int = Field(
        default=constants.DEFAULT_TIMEOUT_SECONDS,
        ge=constants.MIN_TIMEOUT_SECONDS,
        le=constants.MAX_TIMEOUT_SECONDS,
    )
    subscriber_queue_depth: int = constants.SUBSCRIBER_QUEUE_DEPTH

    def to_config(self) -> PanelConfig:
        """Build the immutable PanelConfig the run pipeline consumes."""
        return PanelConfig(
            upload_dir=self.upload_dir,
            docker_bin=self.docker_bin,
            memory_limit=self.memory_limit,
            cpu_limit=self.cpu_limit,
            pids_limit=self.pids_limit,
            default_timeout_seconds=self.default_timeout_seconds,
            subscriber_queue_depth=self.subscriber_queue_depth,
        )
