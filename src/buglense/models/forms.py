"""Form payloads and JSON Schema validation for user-submitted data."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Sequence

import jsonschema

from .entities import BugPriority, BugStatus

MAX_FORM_ERRORS = 25
_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

LOGIN_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["email", "password"],
    "properties": {
        "email": {"type": "string", "pattern": _EMAIL_PATTERN},
        "password": {"type": "string", "minLength": 1},
        "remember": {"type": "boolean"},
    },
}

REGISTER_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["name", "email", "password", "passwordConfirmation"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "email": {"type": "string", "pattern": _EMAIL_PATTERN},
        "password": {"type": "string", "minLength": 8},
        "passwordConfirmation": {"type": "string"},
    },
}

PROJECT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["name", "key"],
    "properties": {
        "name": {"type": "string", "minLength": 2, "maxLength": 50},
        "key": {"type": "string", "minLength": 2, "maxLength": 20},
        "description": {"type": "string", "maxLength": 500},
        "teamId": {"type": "string"},
    },
}

BUG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["title", "description", "priority", "projectId"],
    "properties": {
        "title": {"type": "string", "minLength": 5, "maxLength": 100},
        "description": {"type": "string", "minLength": 10},
        "priority": {"enum": [member.value for member in BugPriority]},
        "status": {"enum": [member.value for member in BugStatus]},
        "projectId": {"type": "string", "minLength": 1},
        "assigneeId": {"type": ["string", "null"]},
    },
}


@dataclass(slots=True, frozen=True)
class FormError:
    """A single validation problem; ``field`` is empty for form-level issues."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}" if self.field else self.message


class FormValidationError(ValueError):
    """Raised when a form is rejected before any request is sent."""

    def __init__(self, errors: Sequence[FormError]) -> None:
        self.errors = list(errors)
        summary = "; ".join(str(error) for error in self.errors) or "Invalid form"
        super().__init__(summary)


@dataclass(slots=True)
class LoginCredentials:
    email: str
    password: str
    remember: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"email": self.email.strip(), "password": self.password, "remember": self.remember}

    def validate(self) -> list[FormError]:
        return validate_form(self.to_dict(), LOGIN_SCHEMA)


@dataclass(slots=True)
class RegisterData:
    name: str
    email: str
    password: str
    password_confirmation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name.strip(),
            "email": self.email.strip(),
            "password": self.password,
            "passwordConfirmation": self.password_confirmation,
        }

    def validate(self) -> list[FormError]:
        errors = validate_form(self.to_dict(), REGISTER_SCHEMA)
        if self.password != self.password_confirmation:
            errors.append(FormError("passwordConfirmation", "Passwords do not match"))
        return errors


def validate_form(payload: Mapping[str, Any], schema: Mapping[str, Any]) -> list[FormError]:
    """Validate ``payload`` against ``schema`` and return every problem found."""

    validator = jsonschema.Draft202012Validator(schema)
    errors: list[FormError] = []
    for issue in sorted(validator.iter_errors(payload), key=lambda item: [str(part) for part in item.absolute_path]):
        errors.append(FormError(_field_for(issue), _message_for(issue)))
        if len(errors) >= MAX_FORM_ERRORS:
            break
    return errors


def ensure_valid(payload: Mapping[str, Any], schema: Mapping[str, Any]) -> None:
    errors = validate_form(payload, schema)
    if errors:
        raise FormValidationError(errors)


def generate_project_key(name: str) -> str:
    """Derive a URL-friendly project key from a project name."""

    if not name:
        return ""
    key = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    key = re.sub(r"\s+", "-", key)
    return key[:20]


def _field_for(issue: jsonschema.ValidationError) -> str:
    path = [str(part) for part in issue.absolute_path]
    if path:
        return ".".join(path)
    if issue.validator == "required":
        for name in _as_iterable(issue.validator_value):
            if repr(name) in issue.message:
                return str(name)
    return ""


def _message_for(issue: jsonschema.ValidationError) -> str:
    if issue.validator == "required":
        return "This field is required"
    if issue.validator == "minLength":
        return f"Must be at least {issue.validator_value} characters"
    if issue.validator == "maxLength":
        return f"Must be at most {issue.validator_value} characters"
    if issue.validator == "pattern":
        return "Invalid format"
    if issue.validator == "enum":
        allowed = ", ".join(str(value) for value in _as_iterable(issue.validator_value))
        return f"Must be one of: {allowed}"
    return issue.message


def _as_iterable(value: Any) -> Iterable[Any]:
    if isinstance(value, (list, tuple)):
        return value
    return ()


__all__ = [
    "BUG_SCHEMA",
    "FormError",
    "FormValidationError",
    "LOGIN_SCHEMA",
    "LoginCredentials",
    "PROJECT_SCHEMA",
    "REGISTER_SCHEMA",
    "RegisterData",
    "ensure_valid",
    "generate_project_key",
    "validate_form",
]
