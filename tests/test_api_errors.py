"""Tests for the transport error taxonomy and the observational handler."""

from __future__ import annotations

import logging

import pytest

from buglense.api.errors import ApiError, classify_status, handle_global_error


@pytest.mark.parametrize(
    ("status", "expected"),
    [(401, "unauthorized"), (403, "forbidden"), (500, "server"), (503, "server"), (404, "client"), (422, "client")],
)
def test_classify_status(status: int, expected: str) -> None:
    assert classify_status(status) == expected


@pytest.mark.parametrize(
    ("status", "fragment"),
    [
        (401, "Authentication required"),
        (403, "Permission denied"),
        (502, "Server error"),
        (409, "API error (409)"),
    ],
)
def test_handler_logs_by_category(status: int, fragment: str, caplog: pytest.LogCaptureFixture) -> None:
    error = ApiError("nope", status)

    with caplog.at_level(logging.ERROR, logger="buglense.api.errors"):
        result = handle_global_error(error)

    assert result is None
    assert fragment in caplog.text
    assert "nope" in caplog.text


def test_handler_logs_generic_errors(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.ERROR, logger="buglense.api.errors"):
        handle_global_error(RuntimeError("disk full"))

    assert "Application error: disk full" in caplog.text


def test_api_error_carries_payload() -> None:
    error = ApiError("Bad request", 400, {"message": "Bad request"})

    assert str(error) == "Bad request"
    assert error.data == {"message": "Bad request"}
    assert not error.is_unauthorized
    assert "400" in repr(error)
