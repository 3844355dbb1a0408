"""Error types raised by the request transport."""

from __future__ import annotations

import logging
from typing import Any

__all__ = ["ApiError", "classify_status", "handle_global_error"]

LOGGER = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised when the API answers with a non-success HTTP status.

    Attributes:
        status: The HTTP status code of the response.
        data: The decoded JSON error body, or ``None`` when it was not JSON.
    """

    def __init__(self, message: str, status: int, data: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401

    def __repr__(self) -> str:
        return f"ApiError(status={self.status}, message={self.message!r})"


def classify_status(status: int) -> str:
    """Map an HTTP status onto the handler branch it belongs to."""

    if status == 401:
        return "unauthorized"
    if status == 403:
        return "forbidden"
    if status >= 500:
        return "server"
    return "client"


def handle_global_error(error: BaseException) -> None:
    """Log a transport failure. Never raises and never alters the error."""

    if isinstance(error, ApiError):
        category = classify_status(error.status)
        if category == "unauthorized":
            LOGGER.error("Authentication required: %s", error.message)
        elif category == "forbidden":
            LOGGER.error("Permission denied: %s", error.message)
        elif category == "server":
            LOGGER.error("Server error: %s", error.message)
        else:
            LOGGER.error("API error (%s): %s", error.status, error.message)
    elif isinstance(error, Exception):
        LOGGER.error("Application error: %s", error)
    else:
        LOGGER.error("Unknown error: %r", error)
