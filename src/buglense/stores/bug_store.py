"""Bug collection store with client-side filtering."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping

from ..models.entities import Bug, BugPriority, BugStatus, unwrap_data
from .base import DomainStore, parse_many, refresh_selection, remove_by_id, replace_by_id

LOGGER = logging.getLogger(__name__)

FILTER_NAMES = ("status", "priority", "assignee")


@dataclass(slots=True, frozen=True)
class BugFilters:
    """Active predicates; ``None`` (or an empty search term) matches everything."""

    status: BugStatus | None = None
    priority: BugPriority | None = None
    assignee: str | None = None
    search_term: str = ""

    @property
    def is_active(self) -> bool:
        return any((self.status, self.priority, self.assignee, self.search_term))


@dataclass(slots=True, frozen=True)
class BugState:
    bugs: tuple[Bug, ...]
    filtered_bugs: tuple[Bug, ...]
    selected_bug: Bug | None
    filters: BugFilters
    is_loading: bool
    error: str | None


def filter_bugs(bugs: Iterable[Bug], filters: BugFilters) -> list[Bug]:
    """Return the bugs matching every active predicate, in their original order.

    The search term is matched case-insensitively against title and
    description.
    """

    result = list(bugs)
    if filters.status is not None:
        result = [bug for bug in result if bug.status is filters.status]
    if filters.priority is not None:
        result = [bug for bug in result if bug.priority is filters.priority]
    if filters.assignee:
        result = [bug for bug in result if bug.assignee_id == filters.assignee]
    if filters.search_term:
        needle = filters.search_term.lower()
        result = [
            bug
            for bug in result
            if needle in bug.title.lower() or needle in bug.description.lower()
        ]
    return result


class BugStore(DomainStore):
    """Holds the bug list, the selection and the filtered view.

    ``filtered_bugs`` is always ``filter_bugs(bugs, filters)``: it is
    recomputed after every fetch, every mutation and every filter change and
    is never edited directly.
    """

    name = "bugs"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.bugs: list[Bug] = []
        self.filtered_bugs: list[Bug] = []
        self.selected_bug: Bug | None = None
        self.filters = BugFilters()

    def snapshot(self) -> BugState:
        return BugState(
            bugs=tuple(self.bugs),
            filtered_bugs=tuple(self.filtered_bugs),
            selected_bug=self.selected_bug,
            filters=self.filters,
            is_loading=self.is_loading,
            error=self.error,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_bugs(self) -> None:
        async with self._operation("Failed to fetch bugs", reraise=False):
            response = await self._api.get("/bugs")
            self._set_bugs(parse_many(unwrap_data(response), Bug.from_dict))

    async def fetch_bugs_by_project(self, project_id: str) -> None:
        async with self._operation(f"Failed to fetch bugs for project {project_id}", reraise=False):
            response = await self._api.get(f"/projects/{project_id}/bugs")
            self._set_bugs(parse_many(unwrap_data(response), Bug.from_dict))

    async def fetch_bug(self, bug_id: str) -> None:
        async with self._operation(f"Failed to fetch bug {bug_id}", reraise=False):
            response = await self._api.get(f"/bugs/{bug_id}")
            self.selected_bug = Bug.from_dict(unwrap_data(response))
            self._changed("selected_bug")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_bug(self, data: Mapping[str, Any]) -> Bug:
        """Create a bug, append it to ``bugs`` and select it."""

        async with self._operation("Failed to create bug"):
            response = await self._api.post("/bugs", dict(data))
            bug = Bug.from_dict(unwrap_data(response))
            self.selected_bug = bug
            self._set_bugs([*self.bugs, bug], "selected_bug")
        LOGGER.debug("Created bug %s in project %s", bug.id, bug.project_id)
        return bug

    async def update_bug(self, bug_id: str, data: Mapping[str, Any]) -> Bug:
        async with self._operation(f"Failed to update bug {bug_id}"):
            response = await self._api.put(f"/bugs/{bug_id}", dict(data))
            bug = self._merge_updated(bug_id, response)
        return bug

    async def update_bug_status(self, bug_id: str, status: BugStatus | str) -> Bug:
        """Set any status from any other; the workflow is not enforced."""

        status = BugStatus(status)
        async with self._operation(f"Failed to update bug status {bug_id}"):
            response = await self._api.patch(f"/bugs/{bug_id}/status", {"status": status.value})
            bug = self._merge_updated(bug_id, response)
        return bug

    async def assign_bug(self, bug_id: str, user_id: str | None) -> Bug:
        """Assign the bug to ``user_id``; ``None`` unassigns it."""

        async with self._operation(f"Failed to assign bug {bug_id}"):
            response = await self._api.post(f"/bugs/{bug_id}/assign", {"userId": user_id})
            bug = self._merge_updated(bug_id, response)
        return bug

    async def delete_bug(self, bug_id: str) -> None:
        async with self._operation(f"Failed to delete bug {bug_id}"):
            await self._api.delete(f"/bugs/{bug_id}")
            self.selected_bug = refresh_selection(self.selected_bug, bug_id, None)
            self._set_bugs(remove_by_id(self.bugs, bug_id), "selected_bug")

    # ------------------------------------------------------------------
    # Local state
    # ------------------------------------------------------------------

    def set_selected_bug(self, bug: Bug | None) -> None:
        self.selected_bug = bug
        self._changed("selected_bug")

    def set_filter(self, name: str, value: Any) -> None:
        """Set one of the ``status``, ``priority`` or ``assignee`` predicates.

        ``None`` or an empty string clears the predicate. Status and priority
        strings are coerced to their enums.

        Raises:
            ValueError: Unknown filter name, or a value outside the enumeration.
        """

        if name not in FILTER_NAMES:
            raise ValueError(f"Unknown bug filter '{name}'")
        if value is None or value == "":
            coerced: Any = None
        elif name == "status":
            coerced = BugStatus(value)
        elif name == "priority":
            coerced = BugPriority(value)
        else:
            coerced = str(value)
        self.filters = replace(self.filters, **{name: coerced})
        self.apply_filters()

    def set_search_term(self, term: str) -> None:
        self.filters = replace(self.filters, search_term=term or "")
        self.apply_filters()

    def apply_filters(self) -> None:
        self.filtered_bugs = filter_bugs(self.bugs, self.filters)
        self._changed("filters", "filtered_bugs")

    def reset_filters(self) -> None:
        self.filters = BugFilters()
        self.apply_filters()

    def count_by_status(self) -> dict[BugStatus, int]:
        counts = {status: 0 for status in BugStatus}
        for bug in self.bugs:
            counts[bug.status] += 1
        return counts

    def reset_state(self) -> None:
        self.bugs = []
        self.filtered_bugs = []
        self.selected_bug = None
        self.filters = BugFilters()
        self._reset_bookkeeping()
        self._changed("bugs", "filtered_bugs", "selected_bug", "filters", "is_loading", "error")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_bugs(self, bugs: list[Bug], *extra_fields: str) -> None:
        self.bugs = bugs
        self.filtered_bugs = filter_bugs(bugs, self.filters)
        self._changed("bugs", "filtered_bugs", *extra_fields)

    def _merge_updated(self, bug_id: str, response: Any) -> Bug:
        bug = Bug.from_dict(unwrap_data(response))
        self.selected_bug = refresh_selection(self.selected_bug, bug_id, bug)
        self._set_bugs(replace_by_id(self.bugs, bug_id, bug), "selected_bug")
        return bug


__all__ = ["BugFilters", "BugState", "BugStore", "FILTER_NAMES", "filter_bugs"]
