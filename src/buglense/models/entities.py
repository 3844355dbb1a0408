"""Entity dataclasses mirroring the BugLense API payloads.

Wire payloads use camelCase keys (``teamId``, ``createdAt``); the dataclasses
use snake_case attributes. ``from_dict`` accepts the wire format and
``to_dict`` produces it again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping


class BugStatus(Enum):
    """Workflow state of a bug. Any state may be set from any other."""

    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    CLOSED = "Closed"


class BugPriority(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class ToastType(Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


class ThemePreference(Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


def _require(payload: Mapping[str, Any], key: str, entity: str) -> Any:
    if key not in payload or payload[key] is None:
        raise ValueError(f"{entity} payload missing '{key}'")
    return payload[key]


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def unwrap_data(payload: Any) -> Any:
    """Return the ``data`` member of a ``{"data": ...}`` response envelope."""

    if not isinstance(payload, Mapping) or "data" not in payload:
        raise ValueError("Response is missing the 'data' envelope")
    return payload["data"]


@dataclass(slots=True)
class User:
    id: str
    name: str
    email: str
    role: str
    created_at: str = ""
    avatar: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "User":
        return cls(
            id=str(_require(payload, "id", "User")),
            name=str(payload.get("name") or ""),
            email=str(payload.get("email") or ""),
            role=str(payload.get("role") or ""),
            created_at=str(payload.get("createdAt") or ""),
            avatar=_optional_str(payload.get("avatar")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "createdAt": self.created_at,
        }
        if self.avatar is not None:
            data["avatar"] = self.avatar
        return data


@dataclass(slots=True)
class Project:
    id: str
    name: str
    key: str
    team_id: str
    created_at: str = ""
    updated_at: str = ""
    description: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Project":
        return cls(
            id=str(_require(payload, "id", "Project")),
            name=str(payload.get("name") or ""),
            key=str(payload.get("key") or ""),
            team_id=str(payload.get("teamId") or ""),
            created_at=str(payload.get("createdAt") or ""),
            updated_at=str(payload.get("updatedAt") or ""),
            description=_optional_str(payload.get("description")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "key": self.key,
            "teamId": self.team_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass(slots=True)
class Bug:
    id: str
    title: str
    description: str
    status: BugStatus
    priority: BugPriority
    project_id: str
    reporter_id: str
    created_at: str = ""
    updated_at: str = ""
    assignee_id: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Bug":
        # Enum construction raises ValueError for values outside the closed sets.
        return cls(
            id=str(_require(payload, "id", "Bug")),
            title=str(payload.get("title") or ""),
            description=str(payload.get("description") or ""),
            status=BugStatus(_require(payload, "status", "Bug")),
            priority=BugPriority(_require(payload, "priority", "Bug")),
            project_id=str(payload.get("projectId") or ""),
            reporter_id=str(payload.get("reporterId") or ""),
            created_at=str(payload.get("createdAt") or ""),
            updated_at=str(payload.get("updatedAt") or ""),
            assignee_id=_optional_str(payload.get("assigneeId")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "projectId": self.project_id,
            "reporterId": self.reporter_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.assignee_id is not None:
            data["assigneeId"] = self.assignee_id
        return data


@dataclass(slots=True)
class TeamMember:
    id: str
    user_id: str
    user: User
    team_id: str
    role: str
    joined_at: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TeamMember":
        user_payload = _require(payload, "user", "TeamMember")
        return cls(
            id=str(_require(payload, "id", "TeamMember")),
            user_id=str(payload.get("userId") or user_payload.get("id") or ""),
            user=User.from_dict(user_payload),
            team_id=str(payload.get("teamId") or ""),
            role=str(payload.get("role") or ""),
            joined_at=str(payload.get("joinedAt") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "user": self.user.to_dict(),
            "teamId": self.team_id,
            "role": self.role,
            "joinedAt": self.joined_at,
        }


@dataclass(slots=True)
class Team:
    id: str
    name: str
    owner_id: str
    members: List[TeamMember] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Team":
        return cls(
            id=str(_require(payload, "id", "Team")),
            name=str(payload.get("name") or ""),
            owner_id=str(payload.get("ownerId") or ""),
            members=[TeamMember.from_dict(item) for item in payload.get("members") or []],
            created_at=str(payload.get("createdAt") or ""),
            updated_at=str(payload.get("updatedAt") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "ownerId": self.owner_id,
            "members": [member.to_dict() for member in self.members],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def member_for(self, user_id: str) -> TeamMember | None:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None


@dataclass(slots=True)
class Toast:
    """Transient notification shown by the UI layer."""

    id: str
    type: ToastType
    title: str
    message: str | None = None
    duration: int | None = None


__all__ = [
    "Bug",
    "BugPriority",
    "BugStatus",
    "Project",
    "Team",
    "TeamMember",
    "ThemePreference",
    "Toast",
    "ToastType",
    "User",
    "unwrap_data",
]
