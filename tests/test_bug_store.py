"""Tests for the bug store and its client-side filtering."""

from __future__ import annotations

import pytest

from buglense.api.client import ApiClient
from buglense.api.errors import ApiError
from buglense.models.entities import Bug, BugPriority, BugStatus
from buglense.stores.bug_store import BugFilters, BugStore, filter_bugs
from buglense.stores.events import EventBus

from tests.helpers import FakeApi, bug_payload

B1 = bug_payload("B1", status="Open", priority="High", title="App crashes on save", assignee="U1")
B2 = bug_payload("B2", status="Closed", priority="Low", title="Typo in footer")
B3 = bug_payload(
    "B3",
    status="In Progress",
    priority="High",
    title="Slow dashboard",
    description="Dashboard CRASH report takes 10s to render.",
    assignee="U2",
)


@pytest.fixture
def bugs(api: ApiClient, event_bus: EventBus) -> BugStore:
    return BugStore(api, event_bus)


async def _loaded(store: BugStore, fake_api: FakeApi, *payloads: dict) -> None:
    fake_api.add("GET", "/bugs", json={"data": list(payloads or (B1, B2))})
    await store.fetch_bugs()


def _ids(items) -> list[str]:
    return [bug.id for bug in items]


def _assert_consistent(store: BugStore) -> None:
    assert store.filtered_bugs == filter_bugs(store.bugs, store.filters)


class TestFilterScenarios:
    @pytest.mark.asyncio
    async def test_status_filter_then_reset(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api)

        bugs.set_filter("status", "Open")
        assert _ids(bugs.filtered_bugs) == ["B1"]

        bugs.reset_filters()
        assert _ids(bugs.filtered_bugs) == ["B1", "B2"]
        assert bugs.filters == BugFilters()

    @pytest.mark.asyncio
    async def test_search_matches_title_case_insensitively(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api)

        bugs.set_search_term("crash")

        assert _ids(bugs.filtered_bugs) == ["B1"]

    @pytest.mark.asyncio
    async def test_search_also_matches_description(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api, B1, B2, B3)

        bugs.set_search_term("CrAsH")

        assert _ids(bugs.filtered_bugs) == ["B1", "B3"]

    @pytest.mark.asyncio
    async def test_predicates_combine(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api, B1, B2, B3)

        bugs.set_filter("priority", BugPriority.HIGH)
        assert _ids(bugs.filtered_bugs) == ["B1", "B3"]

        bugs.set_filter("assignee", "U2")
        assert _ids(bugs.filtered_bugs) == ["B3"]

        bugs.set_filter("assignee", None)
        bugs.set_filter("status", "")
        assert _ids(bugs.filtered_bugs) == ["B1", "B3"]

    @pytest.mark.asyncio
    async def test_fetch_applies_existing_filters(self, bugs: BugStore, fake_api: FakeApi) -> None:
        bugs.set_filter("status", "Closed")

        await _loaded(bugs, fake_api)

        assert _ids(bugs.filtered_bugs) == ["B2"]

    @pytest.mark.asyncio
    async def test_apply_filters_is_idempotent(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api, B1, B2, B3)
        bugs.set_filter("priority", "High")

        bugs.apply_filters()
        first = list(bugs.filtered_bugs)
        bugs.apply_filters()

        assert bugs.filtered_bugs == first


class TestSetFilterValidation:
    def test_unknown_filter_name(self, bugs: BugStore) -> None:
        with pytest.raises(ValueError, match="Unknown bug filter"):
            bugs.set_filter("severity", "High")

    def test_value_outside_enumeration(self, bugs: BugStore) -> None:
        with pytest.raises(ValueError):
            bugs.set_filter("status", "Reopened")
        assert bugs.filters.status is None

    def test_strings_are_coerced(self, bugs: BugStore) -> None:
        bugs.set_filter("status", "In Progress")
        bugs.set_filter("priority", "Critical")

        assert bugs.filters.status is BugStatus.IN_PROGRESS
        assert bugs.filters.priority is BugPriority.CRITICAL
        assert bugs.filters.is_active


class TestMutations:
    @pytest.mark.asyncio
    async def test_create_adds_exactly_one_server_entity(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api)
        bugs.set_filter("status", "Open")
        created_payload = bug_payload("B9", status="Closed", priority="Low", title="Server copy")
        fake_api.add("POST", "/bugs", status=201, json={"data": created_payload})

        created = await bugs.create_bug({"title": "Client copy", "priority": "Low"})

        assert len(bugs.bugs) == 3
        assert bugs.bugs[-1] == Bug.from_dict(created_payload)
        assert created.title == "Server copy"
        assert bugs.selected_bug == created
        assert _ids(bugs.filtered_bugs) == ["B1"]
        _assert_consistent(bugs)

    @pytest.mark.asyncio
    async def test_created_bug_matching_filters_is_visible(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api)
        bugs.set_filter("status", "Open")
        fake_api.add("POST", "/bugs", status=201, json={"data": bug_payload("B9", status="Open")})

        await bugs.create_bug({"title": "New"})

        assert _ids(bugs.filtered_bugs) == ["B1", "B9"]

    @pytest.mark.asyncio
    async def test_update_reapplies_filters(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api)
        bugs.set_search_term("crash")
        fake_api.add("PUT", "/bugs/B1", json={"data": {**B1, "title": "Save button misaligned"}})

        await bugs.update_bug("B1", {"title": "Save button misaligned"})

        assert bugs.filtered_bugs == []
        _assert_consistent(bugs)

    @pytest.mark.asyncio
    async def test_status_change_reapplies_filters(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api)
        bugs.set_filter("status", "Open")
        bugs.set_selected_bug(bugs.bugs[0])
        fake_api.add("PATCH", "/bugs/B1/status", json={"data": {**B1, "status": "Resolved"}})

        updated = await bugs.update_bug_status("B1", BugStatus.RESOLVED)

        assert fake_api.last_json() == {"status": "Resolved"}
        assert updated.status is BugStatus.RESOLVED
        assert bugs.selected_bug == updated
        assert bugs.filtered_bugs == []
        _assert_consistent(bugs)

    @pytest.mark.asyncio
    async def test_any_status_may_follow_any_other(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api)
        fake_api.add("PATCH", "/bugs/B2/status", json={"data": {**B2, "status": "Open"}})

        reopened = await bugs.update_bug_status("B2", "Open")

        assert reopened.status is BugStatus.OPEN

    @pytest.mark.asyncio
    async def test_assign_reapplies_filters(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api)
        bugs.set_filter("assignee", "U3")
        fake_api.add("POST", "/bugs/B2/assign", json={"data": {**B2, "assigneeId": "U3"}})

        await bugs.assign_bug("B2", "U3")

        assert fake_api.last_json() == {"userId": "U3"}
        assert _ids(bugs.filtered_bugs) == ["B2"]
        _assert_consistent(bugs)

    @pytest.mark.asyncio
    async def test_unassign_sends_null(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api)
        unassigned = dict(B1)
        unassigned.pop("assigneeId")
        fake_api.add("POST", "/bugs/B1/assign", json={"data": unassigned})

        bug = await bugs.assign_bug("B1", None)

        assert fake_api.last_json() == {"userId": None}
        assert bug.assignee_id is None

    @pytest.mark.asyncio
    async def test_delete_reapplies_filters_and_clears_selection(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api)
        bugs.set_selected_bug(bugs.bugs[0])
        fake_api.add("DELETE", "/bugs/B1", status=204)

        await bugs.delete_bug("B1")

        assert _ids(bugs.bugs) == ["B2"]
        assert _ids(bugs.filtered_bugs) == ["B2"]
        assert bugs.selected_bug is None
        _assert_consistent(bugs)

    @pytest.mark.asyncio
    async def test_failed_mutation_keeps_lists(self, bugs: BugStore, fake_api: FakeApi) -> None:
        await _loaded(bugs, fake_api)
        fake_api.add("PUT", "/bugs/B1", status=500, text="")

        with pytest.raises(ApiError):
            await bugs.update_bug("B1", {"title": "x"})

        assert bugs.error == "Error: 500 Internal Server Error"
        assert _ids(bugs.bugs) == ["B1", "B2"]
        _assert_consistent(bugs)


class TestReads:
    @pytest.mark.asyncio
    async def test_fetch_by_project(self, bugs: BugStore, fake_api: FakeApi) -> None:
        fake_api.add("GET", "/projects/P2/bugs", json={"data": [bug_payload("B5", project="P2")]})

        await bugs.fetch_bugs_by_project("P2")

        assert _ids(bugs.bugs) == ["B5"]
        assert _ids(bugs.filtered_bugs) == ["B5"]

    @pytest.mark.asyncio
    async def test_fetch_failure_records_error(self, bugs: BugStore, fake_api: FakeApi) -> None:
        fake_api.add("GET", "/bugs", status=502, json={"message": "Bad gateway"})

        await bugs.fetch_bugs()

        assert bugs.error == "Bad gateway"
        assert bugs.is_loading is False

    @pytest.mark.asyncio
    async def test_malformed_bug_payload_is_reported(self, bugs: BugStore, fake_api: FakeApi) -> None:
        fake_api.add("GET", "/bugs", json={"data": [bug_payload("B1", status="Triaged")]})

        await bugs.fetch_bugs()

        assert bugs.error is not None
        assert bugs.bugs == []

    @pytest.mark.asyncio
    async def test_fetch_bug_selects(self, bugs: BugStore, fake_api: FakeApi) -> None:
        fake_api.add("GET", "/bugs/B1", json={"data": B1})

        await bugs.fetch_bug("B1")

        assert bugs.selected_bug == Bug.from_dict(B1)


@pytest.mark.asyncio
async def test_count_by_status(bugs: BugStore, fake_api: FakeApi) -> None:
    await _loaded(bugs, fake_api, B1, B2, B3)

    counts = bugs.count_by_status()

    assert counts[BugStatus.OPEN] == 1
    assert counts[BugStatus.CLOSED] == 1
    assert counts[BugStatus.IN_PROGRESS] == 1
    assert counts[BugStatus.RESOLVED] == 0


@pytest.mark.asyncio
async def test_reset_state(bugs: BugStore, fake_api: FakeApi) -> None:
    await _loaded(bugs, fake_api)
    bugs.set_filter("status", "Open")

    bugs.reset_state()

    snapshot = bugs.snapshot()
    assert snapshot.bugs == ()
    assert snapshot.filtered_bugs == ()
    assert snapshot.filters == BugFilters()
    assert snapshot.selected_bug is None
