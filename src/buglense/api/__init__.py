"""Request transport for the BugLense REST API."""

from .client import DEFAULT_API_URL, ApiClient, ClientSettings
from .errors import ApiError, classify_status, handle_global_error

__all__ = [
    "ApiClient",
    "ApiError",
    "ClientSettings",
    "DEFAULT_API_URL",
    "classify_status",
    "handle_global_error",
]
