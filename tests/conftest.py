"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from buglense.api.client import ApiClient, ClientSettings
from buglense.services.persistence import MemoryStorage
from buglense.stores.events import Event, EventBus, StateChanged

from tests.helpers import BASE_URL, FakeApi


class _ErrorSink:
    """Collects whatever the transport reports to its error handler."""

    def __init__(self) -> None:
        self.errors: list[BaseException] = []

    def __call__(self, error: BaseException) -> None:
        self.errors.append(error)


class _EventRecorder:
    def __init__(self, bus: EventBus) -> None:
        self.events: list[Event] = []
        bus.subscribe(StateChanged, self.events.append)

    def fields_for(self, store: str) -> set[str]:
        touched: set[str] = set()
        for event in self.events:
            if isinstance(event, StateChanged) and event.store == store:
                touched.update(event.fields)
        return touched


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def error_sink() -> _ErrorSink:
    return _ErrorSink()


@pytest.fixture
def api(fake_api: FakeApi, error_sink: _ErrorSink) -> ApiClient:
    return ApiClient(ClientSettings(base_url=BASE_URL), client=fake_api.client(), error_handler=error_sink)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(event_bus: EventBus) -> _EventRecorder:
    return _EventRecorder(event_bus)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()
