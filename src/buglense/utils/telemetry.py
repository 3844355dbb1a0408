"""Opt-in JSONL recorder for failed API calls."""

from __future__ import annotations

import json
import os
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

__all__ = ["FailureEvent", "TelemetryClient", "telemetry_enabled"]

_DEFAULT_TELEMETRY_DIR = Path.home() / ".buglense" / "telemetry"
_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(slots=True)
class FailureEvent:
    """One recorded failure, serialized as a single JSON line."""

    category: str
    message: str
    status: int | None = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self, session_id: str) -> str:
        payload = {
            "session_id": session_id,
            "category": self.category,
            "status": self.status,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }
        return json.dumps(payload, default=str, ensure_ascii=False)


@dataclass(slots=True)
class TelemetryClient:
    """Buffers failure events and appends them to ``telemetry.jsonl``.

    Nothing is recorded unless ``enabled`` is true; the buffer is flushed when it
    reaches ``max_buffer`` entries or when :meth:`flush` is called on shutdown.
    """

    enabled: bool = False
    storage_dir: Path | str | None = None
    max_buffer: int = 16
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    _buffer: list[FailureEvent] = field(default_factory=list, init=False, repr=False)
    _counts: Counter = field(default_factory=Counter, init=False, repr=False)

    def record_failure(self, category: str, message: str, *, status: int | None = None, **details: Any) -> None:
        if not self.enabled:
            return
        self._buffer.append(FailureEvent(category=category, message=message, status=status, details=details))
        self._counts[category] += 1
        if len(self._buffer) >= self.max_buffer:
            self.flush()

    def flush(self) -> Path | None:
        """Append buffered events to disk; returns the file written, if any."""

        if not self.enabled or not self._buffer:
            return None
        directory = Path(
            self.storage_dir or os.environ.get("BUGLENSE_TELEMETRY_DIR") or _DEFAULT_TELEMETRY_DIR
        ).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / "telemetry.jsonl"
        with target.open("a", encoding="utf-8") as handle:
            for event in self._buffer:
                handle.write(event.to_json(self.session_id))
                handle.write("\n")
        self._buffer.clear()
        return target

    def pending_events(self) -> int:
        return len(self._buffer)

    def failure_counts(self) -> dict[str, int]:
        """Per-category totals for this session, flushed or not."""

        return dict(self._counts)


def telemetry_enabled(settings: Any | None = None) -> bool:
    """``BUGLENSE_TELEMETRY`` wins over ``settings.telemetry_opt_in``."""

    env_value = os.environ.get("BUGLENSE_TELEMETRY")
    if env_value is not None:
        return env_value.strip().lower() in _TRUE_VALUES
    return bool(getattr(settings, "telemetry_opt_in", False))
