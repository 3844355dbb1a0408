"""Client-local UI state: sidebar, theme and toast notifications."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict

from ..models.entities import ThemePreference, Toast, ToastType
from ..services.persistence import UI_STORAGE_KEY
from .events import EventBus, StateChanged, ToastAdded, ToastDismissed

if TYPE_CHECKING:  # pragma: no cover
    from ..services.persistence import KeyValueStorage

LOGGER = logging.getLogger(__name__)

DEFAULT_TOAST_DURATION_MS = 5000

LoopResolver = Callable[[], "asyncio.AbstractEventLoop | None"]


@dataclass(slots=True, frozen=True)
class UIState:
    sidebar_open: bool
    theme: ThemePreference
    toasts: tuple[Toast, ...]


def partialize_ui(state: UIState) -> Dict[str, Any]:
    """Map the UI state to its persisted subset; toasts are never persisted."""

    return {"sidebarOpen": state.sidebar_open, "theme": state.theme.value}


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class UIStore:
    """Sidebar/theme preferences plus self-expiring toasts.

    Each toast gets its own ``loop.call_later`` handle. Removing a toast,
    clearing the list or resetting the store cancels the pending handles, so
    no timer outlives the toast it refers to. When no event loop is running
    the toast simply stays until it is removed manually.
    """

    name = "ui"

    def __init__(
        self,
        event_bus: EventBus,
        *,
        storage: KeyValueStorage | None = None,
        default_duration_ms: int = DEFAULT_TOAST_DURATION_MS,
        clock: Callable[[], float] = time.time,
        loop_resolver: LoopResolver = _running_loop,
    ) -> None:
        self._bus = event_bus
        self._storage = storage
        self._default_duration_ms = default_duration_ms
        self._clock = clock
        self._loop_resolver = loop_resolver
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._last_id = 0
        self.sidebar_open = True
        self.theme = ThemePreference.SYSTEM
        self.toasts: list[Toast] = []

    @property
    def active_timers(self) -> int:
        return len(self._timers)

    def snapshot(self) -> UIState:
        return UIState(sidebar_open=self.sidebar_open, theme=self.theme, toasts=tuple(self.toasts))

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def toggle_sidebar(self) -> bool:
        self.set_sidebar_open(not self.sidebar_open)
        return self.sidebar_open

    def set_sidebar_open(self, open_: bool) -> None:
        self.sidebar_open = bool(open_)
        self._changed("sidebar_open")
        self._persist()

    def set_theme(self, theme: ThemePreference | str) -> None:
        """Raises ``ValueError`` for anything other than light, dark or system."""

        self.theme = ThemePreference(theme)
        self._changed("theme")
        self._persist()

    # ------------------------------------------------------------------
    # Toasts
    # ------------------------------------------------------------------

    def add_toast(
        self,
        type: ToastType | str,
        title: str,
        message: str | None = None,
        duration: int | None = None,
    ) -> Toast:
        """Append a toast and schedule its removal after ``duration`` milliseconds.

        A missing or zero duration falls back to the store default.
        """

        toast = Toast(
            id=self._next_id(),
            type=ToastType(type),
            title=title,
            message=message,
            duration=duration or self._default_duration_ms,
        )
        self.toasts = [*self.toasts, toast]
        self._schedule_expiry(toast)
        self._changed("toasts")
        self._bus.publish(ToastAdded(toast_id=toast.id, type=toast.type.value, title=toast.title))
        return toast

    def notify_success(self, title: str, message: str | None = None) -> Toast:
        return self.add_toast(ToastType.SUCCESS, title, message)

    def notify_error(self, title: str, message: str | None = None) -> Toast:
        return self.add_toast(ToastType.ERROR, title, message)

    def remove_toast(self, toast_id: str) -> bool:
        return self._dismiss(toast_id, expired=False)

    def clear_toasts(self) -> None:
        self._cancel_timers()
        dismissed = [toast.id for toast in self.toasts]
        self.toasts = []
        self._changed("toasts")
        for toast_id in dismissed:
            self._bus.publish(ToastDismissed(toast_id=toast_id))

    def reset_state(self) -> None:
        self._cancel_timers()
        self.toasts = []
        self.sidebar_open = True
        self.theme = ThemePreference.SYSTEM
        self._changed("sidebar_open", "theme", "toasts")
        self._persist()

    def close(self) -> None:
        """Cancel every pending expiry timer; toasts stay in the list."""

        self._cancel_timers()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def rehydrate(self) -> bool:
        if self._storage is None:
            return False
        payload = self._storage.read(UI_STORAGE_KEY)
        if not payload:
            return False
        sidebar_open = payload.get("sidebarOpen")
        if isinstance(sidebar_open, bool):
            self.sidebar_open = sidebar_open
        theme = payload.get("theme")
        if theme is not None:
            try:
                self.theme = ThemePreference(theme)
            except ValueError:
                LOGGER.warning("Ignoring persisted theme %r", theme)
        self._changed("sidebar_open", "theme")
        return True

    def _persist(self) -> None:
        if self._storage is None:
            return
        try:
            self._storage.write(UI_STORAGE_KEY, partialize_ui(self.snapshot()))
        except OSError as exc:
            LOGGER.warning("Failed to persist UI state: %s", exc)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _next_id(self) -> str:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    def _schedule_expiry(self, toast: Toast) -> None:
        loop = self._loop_resolver()
        if loop is None:
            LOGGER.debug("No running event loop; toast %s will not auto-expire", toast.id)
            return
        delay = (toast.duration or self._default_duration_ms) / 1000
        self._timers[toast.id] = loop.call_later(delay, self._expire, toast.id)

    def _expire(self, toast_id: str) -> None:
        self._timers.pop(toast_id, None)
        self._dismiss(toast_id, expired=True)

    def _dismiss(self, toast_id: str, *, expired: bool) -> bool:
        handle = self._timers.pop(toast_id, None)
        if handle is not None:
            handle.cancel()
        remaining = [toast for toast in self.toasts if toast.id != toast_id]
        if len(remaining) == len(self.toasts):
            return False
        self.toasts = remaining
        self._changed("toasts")
        self._bus.publish(ToastDismissed(toast_id=toast_id, expired=expired))
        return True

    def _cancel_timers(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def _changed(self, *fields: str) -> None:
        self._bus.publish(StateChanged(store=self.name, fields=tuple(fields)))


__all__ = ["DEFAULT_TOAST_DURATION_MS", "UIState", "UIStore", "partialize_ui"]
