"""Publish/subscribe bus used by the stores to announce state changes.

Views subscribe to these events and re-read the relevant store snapshot; the
events themselves carry only identifiers, never copies of state.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, DefaultDict, Generic, TypeVar
from weakref import WeakMethod

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for every store event."""


@dataclass(slots=True)
class StateChanged(Event):
    """A store's state was written.

    Attributes:
        store: Store name (``"auth"``, ``"projects"``, ``"bugs"``, ``"teams"``, ``"ui"``).
        fields: Names of the state attributes touched by the write.
    """

    store: str
    fields: tuple[str, ...]


@dataclass(slots=True)
class SessionChanged(Event):
    """The authenticated session was established, replaced or cleared."""

    is_authenticated: bool
    user_id: str | None = None


@dataclass(slots=True)
class ToastAdded(Event):
    toast_id: str
    type: str
    title: str


@dataclass(slots=True)
class ToastDismissed(Event):
    """A toast left the list, either manually or because its timer fired."""

    toast_id: str
    expired: bool = False


class EventBus(Generic[E]):
    """Typed, synchronous event bus.

    Bound-method handlers are held weakly so a discarded view does not keep
    receiving events; plain functions and lambdas are held strongly. A handler
    that raises is logged and the remaining handlers still run.

    Not thread-safe: publish from the event loop thread only.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                return

    def publish(self, event: E) -> None:
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            return

        live: list[_HandlerRef] = []
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                continue
            live.append(handler_ref)
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
        if len(live) != len(handlers):
            # Handlers may have subscribed during delivery; keep those too.
            self._handlers[event_type] = [ref for ref in handlers if ref.resolve() is not None]

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, target: object, is_weak: bool) -> None:
        self._ref = target
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> "_HandlerRef":
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)  # type: ignore[arg-type]
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if self._is_weak:
            return self._ref()  # type: ignore[operator]
        return self._ref  # type: ignore[return-value]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    owner = getattr(handler, "__self__", None)
    func = getattr(handler, "__func__", None)
    if owner is not None and func is not None:
        return f"{type(owner).__name__}.{func.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "SessionChanged",
    "StateChanged",
    "ToastAdded",
    "ToastDismissed",
]
