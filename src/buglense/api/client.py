"""Async REST transport for the BugLense API built on httpx."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping

import httpx

from .errors import ApiError, handle_global_error

LOGGER = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8000/api"

ErrorHandler = Callable[[BaseException], None]
FileSpec = Any  # anything httpx accepts as a ``files`` value


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the transport."""

    base_url: str = DEFAULT_API_URL
    request_timeout: float | None = 30.0
    default_headers: Mapping[str, str] | None = None


class ApiClient:
    """Thin wrapper translating logical requests into HTTP calls.

    Holds a single bearer token; once set it is attached to every request.
    Failures are classified into :class:`ApiError`, reported to the error
    handler for observability and then re-raised unchanged. There are no
    retries.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self._settings = settings or ClientSettings()
        self._client = client or self._build_client(self._settings)
        self._owns_client = client is None
        self._error_handler = error_handler or handle_global_error
        self._token: str | None = None

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Token management
    # ------------------------------------------------------------------
    def set_token(self, token: str | None) -> None:
        self._token = token or None
        LOGGER.debug("Bearer token %s", "set" if self._token else "cleared")

    def get_token(self) -> str | None:
        return self._token

    @property
    def token(self) -> str | None:
        return self._token

    # ------------------------------------------------------------------
    # Verb operations
    # ------------------------------------------------------------------
    async def get(self, path: str, params: Mapping[str, str] | None = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post(self, path: str, data: Any | None = None) -> Any:
        return await self._request("POST", path, body=data)

    async def put(self, path: str, data: Any | None = None) -> Any:
        return await self._request("PUT", path, body=data)

    async def patch(self, path: str, data: Any | None = None) -> Any:
        return await self._request("PATCH", path, body=data)

    async def delete(self, path: str) -> Any:
        return await self._request("DELETE", path)

    async def post_form_data(
        self,
        path: str,
        fields: Mapping[str, Any] | None = None,
        files: Mapping[str, FileSpec] | None = None,
    ) -> Any:
        """POST a multipart body; httpx supplies the boundary content type.

        Fields are always sent as ``multipart/form-data`` parts, even when no
        file is attached.
        """

        form = dict(fields or {})
        parts = dict(files or {})
        if not parts:
            # httpx only switches to multipart encoding when files are present.
            parts = {name: (None, _form_value(value)) for name, value in form.items()}
            form = {}
        return await self._request(
            "POST",
            path,
            form=form,
            files=parts,
            multipart=True,
        )

    async def aclose(self) -> None:
        """Close the underlying httpx client if this instance created it."""

        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _build_client(self, settings: ClientSettings) -> httpx.AsyncClient:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            headers=headers,
        )

    def _build_headers(self, *, multipart: bool = False) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if not multipart:
            headers["Content-Type"] = "application/json"
        headers["Accept"] = "application/json"
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        body: Any | None = None,
        form: Dict[str, Any] | None = None,
        files: Dict[str, FileSpec] | None = None,
        multipart: bool = False,
    ) -> Any:
        request_kwargs: Dict[str, Any] = {"headers": self._build_headers(multipart=multipart)}
        if params:
            request_kwargs["params"] = dict(params)
        if multipart:
            request_kwargs["data"] = form
            request_kwargs["files"] = files
        elif body:
            request_kwargs["content"] = json.dumps(body)

        LOGGER.debug("%s %s", method, path)
        response = await self._client.request(method, path, **request_kwargs)
        try:
            return self._handle_response(response)
        except ApiError as exc:
            self._error_handler(exc)
            raise

    def _handle_response(self, response: httpx.Response) -> Any:
        if not response.is_success:
            fallback = f"Error: {response.status_code} {response.reason_phrase}"
            error_data: Any = None
            try:
                error_data = response.json()
            except ValueError:
                message = fallback
            else:
                message = _extract_message(error_data) or fallback
            raise ApiError(message, response.status_code, error_data)

        if response.status_code == 204:
            return {}

        return response.json()


def _form_value(value: Any) -> str | bytes:
    if isinstance(value, (str, bytes)):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _extract_message(payload: Any) -> str | None:
    if isinstance(payload, Mapping):
        message = payload.get("message")
        if message:
            return str(message)
    return None


__all__ = ["ApiClient", "ClientSettings", "DEFAULT_API_URL"]
