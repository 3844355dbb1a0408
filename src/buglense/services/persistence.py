"""Durable storage for the persisted store slices.

Two independent keys are kept in one JSON document: ``buglense-auth`` (user,
token, isAuthenticated) and ``buglense-ui`` (sidebarOpen, theme). Secret
fields such as the bearer token never hit the disk in plaintext; they are
stored as ``<field>_ciphertext`` encrypted with a Fernet key kept beside the
state file.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Protocol

from cryptography.fernet import Fernet, InvalidToken

LOGGER = logging.getLogger(__name__)

AUTH_STORAGE_KEY = "buglense-auth"
UI_STORAGE_KEY = "buglense-ui"
_STATE_VERSION = 1
_CIPHER_PREFIX = "fernet:"
_CIPHERTEXT_SUFFIX = "_ciphertext"


class KeyValueStorage(Protocol):
    """Interface the stores use to persist their slices."""

    def read(self, key: str) -> Dict[str, Any] | None: ...

    def write(self, key: str, payload: Mapping[str, Any], secret_fields: Iterable[str] = ()) -> None: ...

    def remove(self, key: str) -> None: ...


class TokenCipher:
    """Symmetric Fernet encryption with a key file created on first use."""

    def __init__(self, key_path: Path) -> None:
        self._key_path = key_path
        self._fernet: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        token = self._get_fernet().encrypt(secret.encode("utf-8"))
        return _CIPHER_PREFIX + token.decode("ascii")

    def decrypt(self, token: str) -> str:
        payload = token[len(_CIPHER_PREFIX):] if token.startswith(_CIPHER_PREFIX) else token
        try:
            raw = self._get_fernet().decrypt(payload.encode("ascii"))
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc
        return raw.decode("utf-8")

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_key())
        return self._fernet

    def _load_or_create_key(self) -> bytes:
        path = self._key_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            return path.read_bytes().strip()
        key = Fernet.generate_key()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)
        return key


class StateStorage:
    """JSON-file implementation of :class:`KeyValueStorage`."""

    def __init__(self, path: Path, *, cipher: TokenCipher | None = None) -> None:
        self._path = path
        self._cipher = cipher or TokenCipher(path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    def read(self, key: str) -> Dict[str, Any] | None:
        """Return the payload stored under ``key`` with secrets decrypted.

        A secret that can no longer be decrypted (key rotated or file
        tampered with) is dropped and logged; the rest of the payload is kept.
        """

        entry = self._read_document().get(key)
        if not isinstance(entry, Mapping):
            return None
        payload: Dict[str, Any] = {}
        for name, value in entry.items():
            if not name.endswith(_CIPHERTEXT_SUFFIX):
                payload[name] = value
                continue
            field_name = name[: -len(_CIPHERTEXT_SUFFIX)]
            if not value:
                payload[field_name] = None
                continue
            try:
                payload[field_name] = self._cipher.decrypt(str(value))
            except ValueError as exc:
                LOGGER.warning("Unable to decrypt persisted %s.%s: %s", key, field_name, exc)
                payload[field_name] = None
        return payload

    def write(self, key: str, payload: Mapping[str, Any], secret_fields: Iterable[str] = ()) -> None:
        secrets = set(secret_fields)
        entry: Dict[str, Any] = {}
        for name, value in payload.items():
            if name in secrets:
                entry[name + _CIPHERTEXT_SUFFIX] = self._cipher.encrypt(str(value)) if value else None
            else:
                entry[name] = value
        document = self._read_document()
        document[key] = entry
        self._write_document(document)

    def remove(self, key: str) -> None:
        document = self._read_document()
        if document.pop(key, None) is not None:
            self._write_document(document)

    def _read_document(self) -> Dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("State file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(document, dict):
            return {}
        document.pop("version", None)
        return document

    def _write_document(self, document: Mapping[str, Any]) -> None:
        body = dict(document)
        body["version"] = _STATE_VERSION
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(body, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("State saved to %s (%s)", self._path, ", ".join(sorted(document)))


class MemoryStorage:
    """In-memory :class:`KeyValueStorage` for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._entries: Dict[str, Dict[str, Any]] = {}
        self.writes = 0

    def read(self, key: str) -> Dict[str, Any] | None:
        entry = self._entries.get(key)
        return dict(entry) if entry is not None else None

    def write(self, key: str, payload: Mapping[str, Any], secret_fields: Iterable[str] = ()) -> None:
        self._entries[key] = dict(payload)
        self.writes += 1

    def remove(self, key: str) -> None:
        self._entries.pop(key, None)


__all__ = [
    "AUTH_STORAGE_KEY",
    "KeyValueStorage",
    "MemoryStorage",
    "StateStorage",
    "TokenCipher",
    "UI_STORAGE_KEY",
]
