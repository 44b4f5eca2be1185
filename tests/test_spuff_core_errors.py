from __future__ import annotations

import pytest

from spuff_core import errors


@pytest.mark.parametrize(
    ("error_cls", "status"),
    [
        (errors.ConfigError, 400),
        (errors.InvalidPayloadError, 400),
        (errors.AuthenticationError, 401),
        (errors.LogAccessDeniedError, 403),
        (errors.LogFileNotFoundError, 404),
        (errors.ExecTimeoutError, 408),
        (errors.InstallInProgressError, 409),
        (errors.ExecSpawnError, 500),
        (errors.CommandError, 500),
        (errors.DockerUnavailableError, 503),
    ],
)
def test_typed_errors_carry_http_status(error_cls: type[errors.TypedAgentError], status: int) -> None:
    exc = error_cls("boom")

    assert isinstance(exc, errors.TypedAgentError)
    assert errors.typed_error_status(exc) == status
    assert errors.typed_error_payload(exc) == {"error": "boom"}
    assert errors.typed_error_metadata(exc)["error_code"] == error_cls.error_code


def test_untyped_exceptions_fall_back_to_internal() -> None:
    exc = ValueError("nope")

    assert errors.typed_error_status(exc) == 500
    assert errors.typed_error_payload(exc) is None
    assert errors.typed_error_metadata(exc) is None
