from __future__ import annotations

import logging
import unittest

from spuff_core.errors import AuthenticationError
from spuff_agent.services.auth_service import AuthService


LOGGER_NAME = "spuff_agent.test.auth"


def _as_header_text(raw: bytes) -> str:
    # ASGI servers hand header bytes to the app decoded as latin-1
    return raw.decode("latin-1")


class AuthServiceTests(unittest.TestCase):
    def _service(self, token: str | None) -> AuthService:
        return AuthService(auth_token=token, logger=logging.getLogger(LOGGER_NAME))

    def test_ascii_token_matches(self) -> None:
        self._service("s3cret").authenticate("s3cret")

    def test_non_ascii_token_matches_utf8_header_bytes(self) -> None:
        token = "tökén-✓"
        service = self._service(token)

        service.authenticate(_as_header_text(token.encode("utf-8")))

        with self.assertRaisesRegex(AuthenticationError, "^Invalid authentication token$"):
            service.authenticate(_as_header_text("tokén-x".encode("utf-8")))

    def test_missing_and_wrong_header_are_distinct(self) -> None:
        service = self._service("s3cret")

        with self.assertRaisesRegex(AuthenticationError, "^Missing X-Spuff-Token header$"):
            service.authenticate(None)
        with self.assertRaisesRegex(AuthenticationError, "^Invalid authentication token$") as ctx:
            service.authenticate("nope")
        self.assertEqual(ctx.exception.status_code, 401)

    def test_disabled_auth_logs_notice_once(self) -> None:
        service = self._service(None)
        self.assertFalse(service.enabled)

        with self.assertLogs(LOGGER_NAME, level="DEBUG") as captured:
            service.authenticate(None)
            service.authenticate("anything")

        self.assertEqual(len(captured.records), 1)
        self.assertIn("Authentication disabled", captured.records[0].getMessage())


if __name__ == "__main__":
    unittest.main()
