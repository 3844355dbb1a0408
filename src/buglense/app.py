"""Command-line front end for the BugLense client state layer."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

import httpx

from .api.errors import ApiError
from .container import AppContainer
from .models.entities import Bug, BugPriority, BugStatus
from .models.forms import (
    BUG_SCHEMA,
    PROJECT_SCHEMA,
    FormValidationError,
    LoginCredentials,
    RegisterData,
    ensure_valid,
    generate_project_key,
)
from .services.settings import Settings, SettingsStore, redacted_headers
from .stores.events import ToastAdded
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)
# Commands that replace the session themselves and must not refresh it first.
_SESSION_COMMANDS = {"login", "register", "logout"}

Command = Callable[[argparse.Namespace, AppContainer, TextIO], Awaitable[int]]


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, console=debug, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``buglense`` console script."""

    parser = build_parser()
    args = parser.parse_args(argv)

    debug = args.debug or _env_flag("BUGLENSE_DEBUG")
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("BUGLENSE_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0
    if args.command is None:
        parser.print_help()
        return 2

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    container = AppContainer.create(settings, settings_path=settings_store.path)
    try:
        return asyncio.run(run_command(args, container))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Interrupted by user.")
        return 130


async def run_command(
    args: argparse.Namespace,
    container: AppContainer,
    *,
    out: TextIO | None = None,
    err: TextIO | None = None,
) -> int:
    """Run one parsed command against ``container`` and close it afterwards.

    API and form failures are reported on ``err`` and turned into exit code 1.
    """

    out = out or sys.stdout
    err = err or sys.stderr
    printer = _ToastPrinter(container, err)
    container.event_bus.subscribe(ToastAdded, printer.on_toast)
    handler = _COMMANDS[args.command]
    try:
        if args.command in _SESSION_COMMANDS:
            container.rehydrate()
        else:
            await container.bootstrap()
        return await handler(args, container, out)
    except FormValidationError as exc:
        for error in exc.errors:
            print(f"  {error}", file=err)
        container.ui.notify_error("Please fix the highlighted fields")
        return 1
    except ApiError as exc:
        container.ui.notify_error("Request failed", exc.message)
        return 1
    except httpx.HTTPError as exc:
        container.ui.notify_error("Network error", str(exc) or type(exc).__name__)
        return 1
    finally:
        container.event_bus.unsubscribe(ToastAdded, printer.on_toast)
        await container.aclose()


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


async def _cmd_login(args: argparse.Namespace, container: AppContainer, out: TextIO) -> int:
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    user = await container.auth.login(LoginCredentials(args.email, password, remember=args.remember))
    container.ui.notify_success("Signed in", f"Welcome back, {user.name or user.email}")
    return 0


async def _cmd_register(args: argparse.Namespace, container: AppContainer, out: TextIO) -> int:
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    confirmation = args.confirm if args.confirm is not None else getpass.getpass("Confirm password: ")
    user = await container.auth.register(RegisterData(args.name, args.email, password, confirmation))
    container.ui.notify_success("Account created", f"Signed in as {user.email}")
    return 0


async def _cmd_logout(args: argparse.Namespace, container: AppContainer, out: TextIO) -> int:
    await container.auth.logout()
    container.reset()
    container.ui.notify_success("Signed out")
    return 0


async def _cmd_whoami(args: argparse.Namespace, container: AppContainer, out: TextIO) -> int:
    if not _require_session(container, out):
        return 1
    user = container.auth.user
    assert user is not None
    print(f"{user.name} <{user.email}> ({user.role})", file=out)
    return 0


async def _cmd_projects(args: argparse.Namespace, container: AppContainer, out: TextIO) -> int:
    if not _require_session(container, out):
        return 1
    store = container.projects
    await store.fetch_projects()
    if store.error:
        return _report_fetch_error(container, "Could not load projects", store.error)
    projects = store.projects_for_team(args.team) if args.team else store.projects
    for project in projects:
        print(f"{project.key:<20} {project.id:<12} {project.name}", file=out)
    return 0


async def _cmd_new_project(args: argparse.Namespace, container: AppContainer, out: TextIO) -> int:
    if not _require_session(container, out):
        return 1
    payload: Dict[str, Any] = {"name": args.name, "key": args.key or generate_project_key(args.name)}
    if args.description:
        payload["description"] = args.description
    if args.team:
        payload["teamId"] = args.team
    ensure_valid(payload, PROJECT_SCHEMA)
    project = await container.projects.create_project(payload)
    container.ui.notify_success("Project created", f"{project.name} ({project.key})")
    print(project.id, file=out)
    return 0


async def _cmd_bugs(args: argparse.Namespace, container: AppContainer, out: TextIO) -> int:
    if not _require_session(container, out):
        return 1
    store = container.bugs
    if args.project:
        await store.fetch_bugs_by_project(args.project)
    else:
        await store.fetch_bugs()
    if store.error:
        return _report_fetch_error(container, "Could not load bugs", store.error)
    store.set_filter("status", args.status)
    store.set_filter("priority", args.priority)
    store.set_filter("assignee", args.assignee)
    store.set_search_term(args.search or "")
    for bug in store.filtered_bugs:
        print(_format_bug(bug), file=out)
    if args.summary:
        counts = store.count_by_status()
        print(" | ".join(f"{status.value}: {counts[status]}" for status in BugStatus), file=out)
    return 0


async def _cmd_report_bug(args: argparse.Namespace, container: AppContainer, out: TextIO) -> int:
    if not _require_session(container, out):
        return 1
    payload: Dict[str, Any] = {
        "title": args.title,
        "description": args.description,
        "priority": args.priority,
        "projectId": args.project,
        "status": BugStatus.OPEN.value,
    }
    if args.assignee:
        payload["assigneeId"] = args.assignee
    ensure_valid(payload, BUG_SCHEMA)
    bug = await container.bugs.create_bug(payload)
    container.ui.notify_success("Bug reported", bug.title)
    print(bug.id, file=out)
    return 0


async def _cmd_bug_status(args: argparse.Namespace, container: AppContainer, out: TextIO) -> int:
    if not _require_session(container, out):
        return 1
    bug = await container.bugs.update_bug_status(args.bug_id, args.status)
    container.ui.notify_success("Status updated", f"{bug.id} is now {bug.status.value}")
    return 0


async def _cmd_teams(args: argparse.Namespace, container: AppContainer, out: TextIO) -> int:
    if not _require_session(container, out):
        return 1
    store = container.teams
    await store.fetch_teams()
    if store.error:
        return _report_fetch_error(container, "Could not load teams", store.error)
    user = container.auth.user
    for team in store.teams:
        membership = team.member_for(user.id) if user is not None else None
        role = f", you: {membership.role}" if membership is not None else ""
        print(f"{team.id:<12} {team.name} ({len(team.members)} members{role})", file=out)
        if args.members:
            for member in team.members:
                print(f"    {member.user.name:<24} {member.role}", file=out)
    return 0


_COMMANDS: Dict[str, Command] = {
    "login": _cmd_login,
    "register": _cmd_register,
    "logout": _cmd_logout,
    "whoami": _cmd_whoami,
    "projects": _cmd_projects,
    "new-project": _cmd_new_project,
    "bugs": _cmd_bugs,
    "report-bug": _cmd_report_bug,
    "bug-status": _cmd_bug_status,
    "teams": _cmd_teams,
}


def _require_session(container: AppContainer, out: TextIO) -> bool:
    if container.auth.is_authenticated:
        return True
    print("Not signed in. Run 'buglense login' first.", file=out)
    return False


def _report_fetch_error(container: AppContainer, title: str, message: str) -> int:
    container.ui.notify_error(title, message)
    return 1


def _format_bug(bug: Bug) -> str:
    assignee = bug.assignee_id or "-"
    return f"{bug.id:<10} {bug.status.value:<12} {bug.priority.value:<9} {assignee:<10} {bug.title}"


class _ToastPrinter:
    """Echoes toasts to the terminal as they are added."""

    def __init__(self, container: AppContainer, stream: TextIO) -> None:
        self._container = container
        self._stream = stream

    def on_toast(self, event: ToastAdded) -> None:
        message = next(
            (toast.message for toast in self._container.ui.toasts if toast.id == event.toast_id),
            None,
        )
        line = f"[{event.type}] {event.title}"
        if message:
            line = f"{line}: {message}"
        print(line, file=self._stream)


# ----------------------------------------------------------------------
# Argument parsing
# ----------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buglense",
        description="Work with a BugLense server from the terminal.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.buglense/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this invocation (repeatable).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging on stderr.")

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    login = commands.add_parser("login", help="Sign in and remember the session.")
    login.add_argument("email")
    login.add_argument("--password", help="Prompted for when omitted.")
    login.add_argument("--remember", action="store_true")

    register = commands.add_parser("register", help="Create an account and sign in.")
    register.add_argument("name")
    register.add_argument("email")
    register.add_argument("--password", help="Prompted for when omitted.")
    register.add_argument("--confirm", help="Password confirmation; prompted for when omitted.")

    commands.add_parser("logout", help="Sign out and forget the session.")
    commands.add_parser("whoami", help="Show the signed-in user.")

    projects = commands.add_parser("projects", help="List projects.")
    projects.add_argument("--team", help="Only projects owned by this team id.")

    new_project = commands.add_parser("new-project", help="Create a project.")
    new_project.add_argument("name")
    new_project.add_argument("--key", help="Defaults to a key derived from the name.")
    new_project.add_argument("--description")
    new_project.add_argument("--team", help="Owning team id.")

    bugs = commands.add_parser("bugs", help="List bugs, optionally filtered.")
    bugs.add_argument("--project", help="Only bugs of this project id.")
    bugs.add_argument("--status", choices=[status.value for status in BugStatus])
    bugs.add_argument("--priority", choices=[priority.value for priority in BugPriority])
    bugs.add_argument("--assignee", help="Assignee user id.")
    bugs.add_argument("--search", help="Case-insensitive match on title and description.")
    bugs.add_argument("--summary", action="store_true", help="Print per-status counts.")

    report = commands.add_parser("report-bug", help="Report a new bug.")
    report.add_argument("--project", required=True, help="Project id.")
    report.add_argument("--title", required=True)
    report.add_argument("--description", required=True)
    report.add_argument("--priority", default="Medium", choices=[priority.value for priority in BugPriority])
    report.add_argument("--assignee", help="Assignee user id.")

    bug_status = commands.add_parser("bug-status", help="Set the status of a bug.")
    bug_status.add_argument("bug_id")
    bug_status.add_argument("status", choices=[status.value for status in BugStatus])

    teams = commands.add_parser("teams", help="List teams.")
    teams.add_argument("--members", action="store_true", help="Also list team members.")

    return parser


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(type_hints.get(key, fields[key].type), raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    optional = type(None) in get_args(annotation)
    if optional and raw_value.lower() in {"none", "null", ""}:
        return None
    target = _resolve_annotation(annotation)
    if target is str or target is Any:
        return raw_value
    if target is bool:
        return _parse_bool(raw_value)
    if target is int:
        return int(raw_value, 10)
    if target is float:
        return float(raw_value)
    if target is dict:
        try:
            value = json.loads(raw_value or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
        if not isinstance(value, dict):
            raise ValueError("Dict overrides must be valid JSON objects")
        return value
    return raw_value


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["default_headers"] = redacted_headers(settings.default_headers)
    metadata = {
        "path": str(store.path),
        "state_path": str(settings.resolved_state_path(store.path)),
        "log_path": _optional_path(logging_utils.get_log_path()),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


def _optional_path(path: Path | None) -> str | None:
    return str(path) if path is not None else None


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("BUGLENSE_"))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
