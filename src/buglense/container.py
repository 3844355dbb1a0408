"""Application root: builds the transport, storage and stores and wires them together.

There are no module-level store singletons. Whatever drives the stores (the
CLI here, a UI elsewhere) constructs one :class:`AppContainer` and passes the
stores it needs by reference.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from .api.client import ApiClient
from .api.errors import ApiError, handle_global_error
from .services.persistence import KeyValueStorage, StateStorage
from .services.settings import Settings
from .stores.auth_store import AuthStore
from .stores.bug_store import BugStore
from .stores.events import EventBus
from .stores.project_store import ProjectStore
from .stores.team_store import TeamStore
from .stores.ui_store import UIStore
from .utils.telemetry import TelemetryClient, telemetry_enabled

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContainer:
    """Every long-lived object of one client session."""

    settings: Settings
    api: ApiClient
    event_bus: EventBus
    storage: KeyValueStorage
    telemetry: TelemetryClient
    auth: AuthStore
    projects: ProjectStore
    bugs: BugStore
    teams: TeamStore
    ui: UIStore
    rehydrated: bool = field(default=False, init=False)

    @classmethod
    def create(
        cls,
        settings: Settings,
        *,
        storage: KeyValueStorage | None = None,
        http_client: httpx.AsyncClient | None = None,
        telemetry: TelemetryClient | None = None,
        settings_path: Path | None = None,
    ) -> "AppContainer":
        """Build a container from ``settings``.

        Args:
            settings: Effective settings (file, CLI and environment applied).
            storage: Persisted-state backend; defaults to the JSON state file.
            http_client: Pre-built httpx client, e.g. one using ``MockTransport``.
            telemetry: Failure recorder; defaults to one honouring the opt-in.
            settings_path: Settings file location, used to place the state file.
        """

        telemetry = telemetry or TelemetryClient(enabled=telemetry_enabled(settings))
        storage = storage or StateStorage(settings.resolved_state_path(settings_path))
        api = ApiClient(
            settings.client_settings(),
            client=http_client,
            error_handler=_telemetry_error_handler(telemetry),
        )
        bus = EventBus()
        return cls(
            settings=settings,
            api=api,
            event_bus=bus,
            storage=storage,
            telemetry=telemetry,
            auth=AuthStore(api, bus, storage=storage),
            projects=ProjectStore(api, bus),
            bugs=BugStore(api, bus),
            teams=TeamStore(api, bus),
            ui=UIStore(bus, storage=storage, default_duration_ms=settings.toast_duration_ms),
        )

    def rehydrate(self) -> bool:
        """Restore persisted slices once; must run before any request is sent.

        Returns:
            True if an authenticated session was restored.
        """

        if self.rehydrated:
            return self.auth.is_authenticated
        self.ui.rehydrate()
        restored = self.auth.rehydrate()
        self.rehydrated = True
        return restored

    async def bootstrap(self) -> None:
        """Rehydrate, then re-validate a restored session against the server."""

        self.rehydrate()
        if self.auth.token:
            await self.auth.refresh_user()

    def reset(self) -> None:
        """Return every store to its initial state (used after logout)."""

        for store in (self.projects, self.bugs, self.teams):
            store.reset_state()
        self.ui.clear_toasts()

    async def aclose(self) -> None:
        """Cancel toast timers, drop subscribers, flush telemetry and close the transport."""

        self.ui.close()
        LOGGER.debug("Dropping %d event subscriptions", self.event_bus.handler_count())
        self.event_bus.clear()
        failures = self.telemetry.failure_counts()
        if failures:
            LOGGER.info("API failures this session: %s", failures)
        self.telemetry.flush()
        await self.api.aclose()


def _telemetry_error_handler(telemetry: TelemetryClient):
    def _handle(error: BaseException) -> None:
        handle_global_error(error)
        if isinstance(error, ApiError):
            telemetry.record_failure("api_error", error.message, status=error.status)

    return _handle


__all__ = ["AppContainer"]
