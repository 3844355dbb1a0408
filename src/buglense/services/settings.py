"""Settings dataclass and JSON persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from ..api.client import DEFAULT_API_URL, ClientSettings

__all__ = [
    "Settings",
    "SettingsStore",
    "DEFAULT_SETTINGS_DIR",
    "redact_secret",
    "redacted_headers",
]

LOGGER = logging.getLogger(__name__)
DEFAULT_SETTINGS_DIR = Path.home() / ".buglense"
_DEFAULT_SETTINGS_PATH = DEFAULT_SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "BUGLENSE_API_URL": "api_url",
    "BUGLENSE_STATE_PATH": "state_path",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "BUGLENSE_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "BUGLENSE_REQUEST_TIMEOUT": "request_timeout",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "BUGLENSE_TOAST_DURATION_MS": "toast_duration_ms",
}
_FIELD_TYPES: Mapping[str, tuple[type, ...]] = {
    "api_url": (str,),
    "request_timeout": (int, float, type(None)),
    "toast_duration_ms": (int,),
    "debug_logging": (bool,),
    "telemetry_opt_in": (bool,),
    "state_path": (str, type(None)),
    "default_headers": (dict,),
}
_NUMERIC_PARSERS: Mapping[str, Any] = {
    "request_timeout": float,
    "toast_duration_ms": lambda raw: int(raw, 10),
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_SENSITIVE_HEADERS = {"authorization", "x-api-key", "cookie"}


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    api_url: str = DEFAULT_API_URL
    # Seconds; ``None`` or a non-positive value disables the timeout.
    request_timeout: float | None = 30.0
    toast_duration_ms: int = 5000
    debug_logging: bool = False
    telemetry_opt_in: bool = False
    state_path: str | None = None
    default_headers: dict[str, str] = field(default_factory=dict)

    def client_settings(self) -> ClientSettings:
        timeout = self.request_timeout
        if timeout is not None and timeout <= 0:
            timeout = None
        return ClientSettings(
            base_url=self.api_url,
            request_timeout=timeout,
            default_headers=dict(self.default_headers) or None,
        )

    def resolved_state_path(self, settings_path: Path | None = None) -> Path:
        """Return the persisted-state file, defaulting to a sibling of the settings file."""

        if self.state_path:
            return Path(self.state_path).expanduser()
        base_dir = settings_path.parent if settings_path is not None else DEFAULT_SETTINGS_DIR
        return base_dir / "state.json"


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, then apply CLI overrides and the environment.

        Precedence, lowest first: defaults, file, ``overrides``, environment.
        """

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data = _validated_fields(_filter_fields(payload), self._path)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if payload.get("version") != _SETTINGS_VERSION:
                LOGGER.debug(
                    "Settings version %s differs from %s; rewriting",
                    payload.get("version"),
                    _SETTINGS_VERSION,
                )
                try:
                    self.save(settings)
                except OSError as exc:
                    LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with an atomic replace."""

        data = asdict(settings)
        data["version"] = _SETTINGS_VERSION
        body = json.dumps(data, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str,
    ) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed}
        headers = filtered.get("default_headers")
        if isinstance(headers, Mapping):
            merged = dict(settings.default_headers)
            merged.update(headers)
            filtered["default_headers"] = merged
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}


def _validated_fields(data: Dict[str, Any], source: Path) -> Dict[str, Any]:
    """Coerce numeric strings and drop values of the wrong type, with a warning."""

    result: Dict[str, Any] = {}
    for name, value in data.items():
        expected = _FIELD_TYPES.get(name)
        if expected is None or (isinstance(value, expected) and not _is_stray_bool(value, expected)):
            result[name] = value
            continue
        parser = _NUMERIC_PARSERS.get(name)
        if parser is not None and isinstance(value, str):
            try:
                result[name] = parser(value.strip())
                continue
            except ValueError:
                pass
        LOGGER.warning("Ignoring invalid %s=%r in %s", name, value, source)
    return result


def _is_stray_bool(value: Any, expected: tuple[type, ...]) -> bool:
    # bool is an int subclass; only accept it where a bool is expected.
    return isinstance(value, bool) and bool not in expected


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"


def redacted_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {
        name: redact_secret(value) if name.lower() in _SENSITIVE_HEADERS else value
        for name, value in headers.items()
    }
