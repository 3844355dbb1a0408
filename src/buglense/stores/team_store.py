"""Team collection store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..models.entities import Team, unwrap_data
from .base import DomainStore, parse_many, refresh_selection, remove_by_id, replace_by_id


@dataclass(slots=True, frozen=True)
class TeamState:
    teams: tuple[Team, ...]
    selected_team: Team | None
    is_loading: bool
    error: str | None


class TeamStore(DomainStore):
    name = "teams"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.teams: list[Team] = []
        self.selected_team: Team | None = None

    def snapshot(self) -> TeamState:
        return TeamState(
            teams=tuple(self.teams),
            selected_team=self.selected_team,
            is_loading=self.is_loading,
            error=self.error,
        )

    async def fetch_teams(self) -> None:
        async with self._operation("Failed to fetch teams", reraise=False):
            response = await self._api.get("/teams")
            self.teams = parse_many(unwrap_data(response), Team.from_dict)
            self._changed("teams")

    async def fetch_team(self, team_id: str) -> None:
        async with self._operation(f"Failed to fetch team {team_id}", reraise=False):
            response = await self._api.get(f"/teams/{team_id}")
            self.selected_team = Team.from_dict(unwrap_data(response))
            self._changed("selected_team")

    async def create_team(self, data: Mapping[str, Any]) -> Team:
        async with self._operation("Failed to create team"):
            response = await self._api.post("/teams", dict(data))
            team = Team.from_dict(unwrap_data(response))
            self.teams = [*self.teams, team]
            self.selected_team = team
            self._changed("teams", "selected_team")
        return team

    async def update_team(self, team_id: str, data: Mapping[str, Any]) -> Team:
        async with self._operation(f"Failed to update team {team_id}"):
            response = await self._api.put(f"/teams/{team_id}", dict(data))
            team = Team.from_dict(unwrap_data(response))
            self.teams = replace_by_id(self.teams, team_id, team)
            self.selected_team = refresh_selection(self.selected_team, team_id, team)
            self._changed("teams", "selected_team")
        return team

    async def delete_team(self, team_id: str) -> None:
        async with self._operation(f"Failed to delete team {team_id}"):
            await self._api.delete(f"/teams/{team_id}")
            self.teams = remove_by_id(self.teams, team_id)
            self.selected_team = refresh_selection(self.selected_team, team_id, None)
            self._changed("teams", "selected_team")

    def set_selected_team(self, team: Team | None) -> None:
        self.selected_team = team
        self._changed("selected_team")

    def reset_state(self) -> None:
        self.teams = []
        self.selected_team = None
        self._reset_bookkeeping()
        self._changed("teams", "selected_team", "is_loading", "error")


__all__ = ["TeamState", "TeamStore"]
