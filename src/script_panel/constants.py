"""Constants for script-panel configuration and limits."""

from typing import Final

# ============================================================================
# Run Requests
# ============================================================================

MAX_FILE_NAME_LENGTH: Final[int] = 300
"""Maximum length of a stored file name accepted for a run."""

DEFAULT_TIMEOUT_SECONDS: Final[int] = 30
"""Run timeout used when the request gives none (or a non-numeric one)."""

MIN_TIMEOUT_SECONDS: Final[int] = 1
"""Lower clamp for run timeouts."""

MAX_TIMEOUT_SECONDS: Final[int] = 300
"""Upper clamp for run timeouts (5 minutes)."""

# ============================================================================
# Sandbox Resource Policy
# ============================================================================

DEFAULT_DOCKER_BIN: Final[str] = "docker"
"""Container runtime CLI."""

SANDBOX_MEMORY_LIMIT: Final[str] = "400m"
"""Container memory limit (docker --memory syntax)."""

SANDBOX_CPU_LIMIT: Final[float] = 0.5
"""Container CPU share (docker --cpus)."""

SANDBOX_PIDS_LIMIT: Final[int] = 100
"""Maximum PIDs inside the container (fork bomb prevention)."""

SANDBOX_USER: Final[str] = "65534:65534"
"""Unprivileged uid:gid the script runs as (nobody:nogroup)."""

SANDBOX_MOUNT_POINT: Final[str] = "/srv/uploads"
"""Where the upload directory is mounted read-only inside the container."""

CONTAINER_NAME_PREFIX: Final[str] = "script-panel-"
"""Container names are this prefix plus the run_id."""

# ============================================================================
# Supervision
# ============================================================================

OUTPUT_CHUNK_SIZE: Final[int] = 64 * 1024
"""Maximum bytes read from a pipe per Stdout/Stderr event."""

READER_DRAIN_GRACE_SECONDS: Final[float] = 2.0
"""How long output readers may keep draining after the process exited.
Grandchildren can hold the pipes open; past this the readers are cancelled."""

CONTAINER_KILL_TIMEOUT_SECONDS: Final[float] = 10.0
"""Timeout for the best-effort `docker kill` issued on timeout."""

# ============================================================================
# Broadcast
# ============================================================================

SUBSCRIBER_QUEUE_DEPTH: Final[int] = 1024
"""Per-subscriber event queue depth. When full, the oldest event is dropped."""

# ============================================================================
# Access
# ============================================================================

DEFAULT_ADMIN_TOKEN: Final[str] = "changeme_localtoken"
"""Placeholder admin token; a warning is logged while it is in use."""

# ============================================================================
# Uploads
# ============================================================================

MAX_UPLOAD_SIZE_BYTES: Final[int] = 500 * 1024 * 1024
"""Maximum size of one uploaded file (500 MB)."""

UPLOAD_FILE_MODE: Final[int] = 0o755
"""Uploaded files are made executable so direct-execution policies work."""
