"""Tests for the application container and its rehydrate/bootstrap boundary."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from buglense.container import AppContainer
from buglense.models.entities import ThemePreference
from buglense.services.persistence import AUTH_STORAGE_KEY, UI_STORAGE_KEY, MemoryStorage, StateStorage
from buglense.services.settings import Settings
from buglense.stores.events import SessionChanged
from buglense.utils.telemetry import TelemetryClient

from tests.helpers import BASE_URL, FakeApi, bug_payload, user_payload


def _persist_session(storage: MemoryStorage, token: str = "tok-1") -> None:
    storage.write(AUTH_STORAGE_KEY, {"user": user_payload(), "token": token, "isAuthenticated": True})


def _container(
    fake_api: FakeApi,
    storage: MemoryStorage,
    *,
    telemetry: TelemetryClient | None = None,
    **settings: object,
) -> AppContainer:
    return AppContainer.create(
        Settings(api_url=BASE_URL, **settings),
        storage=storage,
        http_client=fake_api.client(),
        telemetry=telemetry or TelemetryClient(enabled=False),
    )


class TestCreate:
    def test_stores_share_transport_bus_and_storage(self, fake_api: FakeApi, storage: MemoryStorage) -> None:
        container = _container(fake_api, storage)

        for store in (container.auth, container.projects, container.bugs, container.teams):
            assert store._api is container.api
            assert store._bus is container.event_bus
        assert container.rehydrated is False

    def test_toast_duration_comes_from_settings(self, fake_api: FakeApi, storage: MemoryStorage) -> None:
        container = _container(fake_api, storage, toast_duration_ms=1234)

        assert container.ui.add_toast("info", "Hello").duration == 1234

    def test_default_storage_is_the_state_file(self, fake_api: FakeApi, tmp_path: Path) -> None:
        container = AppContainer.create(
            Settings(api_url=BASE_URL),
            http_client=fake_api.client(),
            telemetry=TelemetryClient(enabled=False),
            settings_path=tmp_path / "settings.json",
        )

        assert isinstance(container.storage, StateStorage)
        assert container.storage.path == tmp_path / "state.json"


class TestRehydrate:
    def test_restores_session_and_primes_transport(self, fake_api: FakeApi, storage: MemoryStorage) -> None:
        _persist_session(storage)
        storage.write(UI_STORAGE_KEY, {"sidebarOpen": False, "theme": "dark"})
        container = _container(fake_api, storage)
        sessions: list[SessionChanged] = []
        container.event_bus.subscribe(SessionChanged, sessions.append)

        assert container.rehydrate() is True

        assert container.api.token == "tok-1"
        assert container.auth.user is not None and container.auth.user.id == "U1"
        assert container.ui.theme is ThemePreference.DARK
        assert container.ui.sidebar_open is False
        assert sessions == [SessionChanged(is_authenticated=True, user_id="U1")]
        assert fake_api.requests == []

    def test_runs_once(self, fake_api: FakeApi, storage: MemoryStorage) -> None:
        container = _container(fake_api, storage)
        assert container.rehydrate() is False

        _persist_session(storage)

        assert container.rehydrate() is False
        assert container.api.token is None

    def test_empty_storage_leaves_signed_out_session(self, fake_api: FakeApi, storage: MemoryStorage) -> None:
        container = _container(fake_api, storage)

        assert container.rehydrate() is False
        assert container.auth.is_authenticated is False


class TestBootstrap:
    @pytest.mark.asyncio
    async def test_refreshes_restored_session_with_bearer_token(
        self, fake_api: FakeApi, storage: MemoryStorage
    ) -> None:
        _persist_session(storage)
        fake_api.add("GET", "/auth/me", json={"user": user_payload(name="Ada King")})
        container = _container(fake_api, storage)

        await container.bootstrap()

        assert container.auth.user is not None
        assert container.auth.user.name == "Ada King"
        assert fake_api.requests[0].headers["Authorization"] == "Bearer tok-1"
        await container.aclose()

    @pytest.mark.asyncio
    async def test_without_token_sends_nothing(self, fake_api: FakeApi, storage: MemoryStorage) -> None:
        container = _container(fake_api, storage)

        await container.bootstrap()

        assert container.rehydrated is True
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_rejected_session_is_cleared_and_recorded(
        self, fake_api: FakeApi, storage: MemoryStorage, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        _persist_session(storage)
        fake_api.add("GET", "/auth/me", status=401, json={"message": "Token expired"})
        fake_api.add("POST", "/auth/logout", status=204)
        telemetry = TelemetryClient(enabled=True, storage_dir=tmp_path)
        container = _container(fake_api, storage, telemetry=telemetry)

        await container.bootstrap()

        assert container.auth.is_authenticated is False
        assert container.auth.error is None
        assert container.api.token is None
        assert storage.read(AUTH_STORAGE_KEY) == {"user": None, "token": None, "isAuthenticated": False}
        assert telemetry.failure_counts() == {"api_error": 1}

        with caplog.at_level(logging.INFO, logger="buglense.container"):
            await container.aclose()

        assert (tmp_path / "telemetry.jsonl").exists()
        assert "API failures this session: {'api_error': 1}" in caplog.text


@pytest.mark.asyncio
async def test_aclose_drops_subscribers_and_timers(fake_api: FakeApi, storage: MemoryStorage) -> None:
    container = _container(fake_api, storage)
    sessions: list[SessionChanged] = []
    container.event_bus.subscribe(SessionChanged, sessions.append)
    container.ui.notify_success("Saved")

    await container.aclose()

    assert container.event_bus.handler_count() == 0
    assert container.ui.active_timers == 0


@pytest.mark.asyncio
async def test_reset_clears_domain_stores_and_toasts(fake_api: FakeApi, storage: MemoryStorage) -> None:
    fake_api.add("GET", "/bugs", json={"data": [bug_payload("B1"), bug_payload("B2")]})
    container = _container(fake_api, storage)
    await container.bugs.fetch_bugs()
    container.bugs.set_search_term("B1")
    container.ui.notify_error("Boom")

    container.reset()

    assert container.bugs.bugs == []
    assert container.bugs.filtered_bugs == []
    assert container.bugs.filters.search_term == ""
    assert container.ui.toasts == []
