"""Entity and form types shared by the transport and the stores."""

from .entities import (
    Bug,
    BugPriority,
    BugStatus,
    Project,
    Team,
    TeamMember,
    ThemePreference,
    Toast,
    ToastType,
    User,
    unwrap_data,
)
from .forms import (
    BUG_SCHEMA,
    LOGIN_SCHEMA,
    PROJECT_SCHEMA,
    REGISTER_SCHEMA,
    FormError,
    FormValidationError,
    LoginCredentials,
    RegisterData,
    ensure_valid,
    generate_project_key,
    validate_form,
)

__all__ = [
    "BUG_SCHEMA",
    "Bug",
    "BugPriority",
    "BugStatus",
    "FormError",
    "FormValidationError",
    "LOGIN_SCHEMA",
    "LoginCredentials",
    "PROJECT_SCHEMA",
    "Project",
    "REGISTER_SCHEMA",
    "RegisterData",
    "Team",
    "TeamMember",
    "ThemePreference",
    "Toast",
    "ToastType",
    "User",
    "ensure_valid",
    "generate_project_key",
    "unwrap_data",
    "validate_form",
]
