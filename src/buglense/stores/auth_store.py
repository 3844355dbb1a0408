"""Authentication session store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Mapping

from ..api.errors import ApiError
from ..models.entities import User
from ..models.forms import FormValidationError, LoginCredentials, RegisterData
from ..services.persistence import AUTH_STORAGE_KEY
from .base import DomainStore
from .events import EventBus, SessionChanged

if TYPE_CHECKING:  # pragma: no cover
    from ..api.client import ApiClient
    from ..services.persistence import KeyValueStorage

LOGGER = logging.getLogger(__name__)

_PERSISTED_FIELDS = frozenset({"user", "token", "is_authenticated"})


@dataclass(slots=True, frozen=True)
class AuthState:
    user: User | None
    token: str | None
    is_authenticated: bool
    is_loading: bool
    error: str | None


def partialize_auth(state: AuthState) -> Dict[str, Any]:
    """Map the full auth state to the persisted subset."""

    return {
        "user": state.user.to_dict() if state.user is not None else None,
        "token": state.token,
        "isAuthenticated": state.is_authenticated,
    }


class AuthStore(DomainStore):
    """Owns the current user and bearer token.

    ``is_authenticated`` is derived: it is true exactly when both ``user`` and
    ``token`` are set. Every change to the session is mirrored to
    ``storage`` under ``buglense-auth`` (token encrypted) and announced with
    :class:`SessionChanged`.
    """

    name = "auth"

    def __init__(
        self,
        api: ApiClient,
        event_bus: EventBus,
        *,
        storage: KeyValueStorage | None = None,
    ) -> None:
        super().__init__(api, event_bus)
        self._storage = storage
        self.user: User | None = None
        self.token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.token is not None

    def snapshot(self) -> AuthState:
        return AuthState(
            user=self.user,
            token=self.token,
            is_authenticated=self.is_authenticated,
            is_loading=self.is_loading,
            error=self.error,
        )

    # ------------------------------------------------------------------
    # Session operations
    # ------------------------------------------------------------------

    async def login(self, credentials: LoginCredentials) -> User:
        """Authenticate and install the returned session.

        Raises:
            FormValidationError: The credentials failed validation; nothing was sent.
            ApiError: The server rejected the login. Prior session state is kept.
        """

        errors = credentials.validate()
        if errors:
            raise FormValidationError(errors)
        async with self._operation("Login failed"):
            response = await self._api.post("/auth/login", credentials.to_dict())
            user, token = _session_from(response)
            self._install_session(user, token)
        return user

    async def register(self, data: RegisterData) -> User:
        errors = data.validate()
        if errors:
            raise FormValidationError(errors)
        async with self._operation("Registration failed"):
            response = await self._api.post("/auth/register", data.to_dict())
            user, token = _session_from(response)
            self._install_session(user, token)
        return user

    async def logout(self) -> None:
        """Clear the session locally, telling the server first when a token is held.

        The local session is cleared even when the server call fails.
        """

        self._pending += 1
        try:
            async with self._lock:
                await self._end_session()
        finally:
            self._pending -= 1

    async def update_profile(self, data: Mapping[str, Any]) -> User:
        async with self._operation("Profile update failed"):
            response = await self._api.put("/auth/profile", dict(data))
            user = User.from_dict(_user_payload(response))
            self.user = user
            self._session_changed("user")
        return user

    async def refresh_user(self) -> None:
        """Reload the current user; a 401 ends the session.

        Does nothing when no token is held. Other failures only land in
        ``error``.
        """

        if not self.token:
            return
        async with self._operation("Failed to refresh user data", reraise=False):
            try:
                response = await self._api.get("/auth/me")
            except ApiError as exc:
                if not exc.is_unauthorized:
                    raise
                LOGGER.info("Session rejected by the server; logging out")
                # Cleared within the same lock hold as the failed request.
                await self._end_session()
                return
            self.user = User.from_dict(_user_payload(response))
            self._session_changed("user")

    def reset_state(self) -> None:
        self._api.set_token(None)
        self.user = None
        self.token = None
        self._reset_bookkeeping()
        self._session_changed("user", "token", "is_authenticated", "is_loading", "error")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def rehydrate(self) -> bool:
        """Restore the persisted session and prime the transport token.

        Returns:
            True if a session (user and token) was restored.
        """

        if self._storage is None:
            return False
        payload = self._storage.read(AUTH_STORAGE_KEY)
        if not payload:
            return False
        token = payload.get("token") or None
        user_payload = payload.get("user")
        user: User | None = None
        if isinstance(user_payload, Mapping):
            try:
                user = User.from_dict(user_payload)
            except ValueError as exc:
                LOGGER.warning("Discarding persisted user: %s", exc)
        self.user = user
        self.token = token
        if token:
            self._api.set_token(token)
        self._changed("user", "token", "is_authenticated")
        self._bus.publish(SessionChanged(self.is_authenticated, user.id if user else None))
        LOGGER.debug("Auth state rehydrated (authenticated=%s)", self.is_authenticated)
        return self.is_authenticated

    async def _end_session(self) -> None:
        """Best-effort server logout, then clear locally. Caller holds ``_lock``."""

        self.is_loading = True
        self._changed("is_loading")
        try:
            if self.token:
                await self._api.post("/auth/logout")
        except Exception as exc:
            LOGGER.warning("Logout request failed: %s", exc)
        finally:
            self._clear_session()

    def _clear_session(self) -> None:
        self._api.set_token(None)
        self.user = None
        self.token = None
        self.is_loading = False
        self._session_changed("user", "token", "is_authenticated", "is_loading")

    def _install_session(self, user: User, token: str) -> None:
        self._api.set_token(token)
        self.user = user
        self.token = token
        self._session_changed("user", "token", "is_authenticated")

    def _session_changed(self, *fields: str) -> None:
        self._changed(*fields)
        if _PERSISTED_FIELDS.intersection(fields):
            self._persist()
        if "token" in fields or "is_authenticated" in fields:
            self._bus.publish(
                SessionChanged(self.is_authenticated, self.user.id if self.user else None)
            )

    def _persist(self) -> None:
        if self._storage is None:
            return
        try:
            self._storage.write(
                AUTH_STORAGE_KEY, partialize_auth(self.snapshot()), secret_fields=("token",)
            )
        except OSError as exc:
            LOGGER.warning("Failed to persist auth state: %s", exc)


def _session_from(response: Any) -> tuple[User, str]:
    if not isinstance(response, Mapping):
        raise ValueError("Unexpected auth response")
    token = response.get("token")
    if not token:
        raise ValueError("Auth response did not include a token")
    return User.from_dict(_user_payload(response)), str(token)


def _user_payload(response: Any) -> Mapping[str, Any]:
    user = response.get("user") if isinstance(response, Mapping) else None
    if not isinstance(user, Mapping):
        raise ValueError("Auth response did not include a user")
    return user


__all__ = ["AuthState", "AuthStore", "partialize_auth"]
