"""Project collection store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from ..models.entities import Project, unwrap_data
from .base import DomainStore, parse_many, refresh_selection, remove_by_id, replace_by_id

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProjectState:
    projects: tuple[Project, ...]
    selected_project: Project | None
    is_loading: bool
    error: str | None


class ProjectStore(DomainStore):
    """Holds the project list and the currently selected project.

    The selection is matched by id: updating the selected project replaces
    it with the server copy and deleting it clears the selection.
    """

    name = "projects"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.projects: list[Project] = []
        self.selected_project: Project | None = None

    def snapshot(self) -> ProjectState:
        return ProjectState(
            projects=tuple(self.projects),
            selected_project=self.selected_project,
            is_loading=self.is_loading,
            error=self.error,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_projects(self) -> None:
        async with self._operation("Failed to fetch projects", reraise=False):
            response = await self._api.get("/projects")
            self.projects = parse_many(unwrap_data(response), Project.from_dict)
            self._changed("projects")

    async def fetch_project(self, project_id: str) -> None:
        async with self._operation(f"Failed to fetch project {project_id}", reraise=False):
            response = await self._api.get(f"/projects/{project_id}")
            self.selected_project = Project.from_dict(unwrap_data(response))
            self._changed("selected_project")

    async def fetch_project_by_key(self, key: str) -> None:
        async with self._operation(f"Failed to fetch project with key {key}", reraise=False):
            response = await self._api.get(f"/projects/key/{key}")
            self.selected_project = Project.from_dict(unwrap_data(response))
            self._changed("selected_project")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_project(self, data: Mapping[str, Any]) -> Project:
        """Create a project, append it and select it."""

        async with self._operation("Failed to create project"):
            response = await self._api.post("/projects", dict(data))
            project = Project.from_dict(unwrap_data(response))
            self.projects = [*self.projects, project]
            self.selected_project = project
            self._changed("projects", "selected_project")
        LOGGER.debug("Created project %s (%s)", project.id, project.key)
        return project

    async def update_project(self, project_id: str, data: Mapping[str, Any]) -> Project:
        async with self._operation(f"Failed to update project {project_id}"):
            response = await self._api.put(f"/projects/{project_id}", dict(data))
            project = Project.from_dict(unwrap_data(response))
            self.projects = replace_by_id(self.projects, project_id, project)
            self.selected_project = refresh_selection(self.selected_project, project_id, project)
            self._changed("projects", "selected_project")
        return project

    async def delete_project(self, project_id: str) -> None:
        async with self._operation(f"Failed to delete project {project_id}"):
            await self._api.delete(f"/projects/{project_id}")
            self.projects = remove_by_id(self.projects, project_id)
            self.selected_project = refresh_selection(self.selected_project, project_id, None)
            self._changed("projects", "selected_project")

    # ------------------------------------------------------------------
    # Local state
    # ------------------------------------------------------------------

    def set_selected_project(self, project: Project | None) -> None:
        self.selected_project = project
        self._changed("selected_project")

    def projects_for_team(self, team_id: str) -> list[Project]:
        return [project for project in self.projects if project.team_id == team_id]

    def reset_state(self) -> None:
        self.projects = []
        self.selected_project = None
        self._reset_bookkeeping()
        self._changed("projects", "selected_project", "is_loading", "error")


__all__ = ["ProjectState", "ProjectStore"]
