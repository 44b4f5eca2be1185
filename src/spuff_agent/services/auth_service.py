from __future__ import annotations

import hmac
import logging
from threading import Lock

from spuff_core.errors import AuthenticationError


TOKEN_HEADER = "X-Spuff-Token"


class AuthService:
    """Shared-secret header check applied to every route except ``/health``."""

    def __init__(self, *, auth_token: str | None, logger: logging.Logger) -> None:
        self._auth_token = auth_token or None
        self._logger = logger
        self._disabled_notice_lock = Lock()
        self._disabled_notice_sent = False

    @property
    def enabled(self) -> bool:
        return self._auth_token is not None

    def authenticate(self, header_value: str | None) -> None:
        if self._auth_token is None:
            with self._disabled_notice_lock:
                first = not self._disabled_notice_sent
                self._disabled_notice_sent = True
            if first:
                self._logger.debug(
                    "Authentication disabled: %s is not set",
                    "SPUFF_AGENT_TOKEN",
                    extra={"component": "auth", "operation": "authenticate", "result": "bypass"},
                )
            return
        if header_value is None:
            self._logger.info(
                "Rejected request without %s header",
                TOKEN_HEADER,
                extra={"component": "auth", "operation": "authenticate", "result": "missing"},
            )
            raise AuthenticationError(f"Missing {TOKEN_HEADER} header")
        # header text arrives latin-1 decoded, so this recovers the raw bytes
        presented = header_value.encode("latin-1", errors="replace")
        expected = self._auth_token.encode("utf-8", errors="surrogateescape")
        if not hmac.compare_digest(presented, expected):
            self._logger.info(
                "Rejected request with invalid token",
                extra={"component": "auth", "operation": "authenticate", "result": "invalid"},
            )
            raise AuthenticationError("Invalid authentication token")
