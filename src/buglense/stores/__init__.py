"""State containers for the BugLense client."""

from .auth_store import AuthState, AuthStore, partialize_auth
from .base import DomainStore
from .bug_store import BugFilters, BugState, BugStore, filter_bugs
from .events import (
    Event,
    EventBus,
    SessionChanged,
    StateChanged,
    ToastAdded,
    ToastDismissed,
)
from .project_store import ProjectState, ProjectStore
from .team_store import TeamState, TeamStore
from .ui_store import UIState, UIStore, partialize_ui

__all__ = [
    "AuthState",
    "AuthStore",
    "BugFilters",
    "BugState",
    "BugStore",
    "DomainStore",
    "Event",
    "EventBus",
    "ProjectState",
    "ProjectStore",
    "SessionChanged",
    "StateChanged",
    "TeamState",
    "TeamStore",
    "ToastAdded",
    "ToastDismissed",
    "UIState",
    "UIStore",
    "filter_bugs",
    "partialize_auth",
    "partialize_ui",
]
