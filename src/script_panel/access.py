"""Admin token gate for run and delete requests."""

from __future__ import annotations

import hmac

from script_panel._logging import get_logger
from script_panel.constants import DEFAULT_ADMIN_TOKEN
from script_panel.exceptions import AccessDeniedError

logger = get_logger(__name__)


class AccessGate:
    """Constant-time comparison against the configured admin token."""

    def __init__(self, admin_token: str) -> None:
        if not admin_token:
            raise ValueError("admin_token must not be empty")
        self._token = admin_token.encode()
        if admin_token == DEFAULT_ADMIN_TOKEN:
            logger.warning(
                "Admin token is the built-in default. Set SCRIPT_PANEL_ADMIN_TOKEN before exposing this service."
            )

    @property
    def uses_default_token(self) -> bool:
        return hmac.compare_digest(self._token, DEFAULT_ADMIN_TOKEN.encode())

    def check(self, token: str | None) -> None:
        """Raise AccessDeniedError unless *token* matches."""
        if token is None or not hmac.compare_digest(token.encode(), self._token):
            raise AccessDeniedError("Forbidden")
