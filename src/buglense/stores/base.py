"""Shared bookkeeping for the server-backed domain stores."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Callable, Iterable, TypeVar

from .events import EventBus, StateChanged

if TYPE_CHECKING:  # pragma: no cover
    from ..api.client import ApiClient

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class DomainStore:
    """Base class for the auth, project, bug and team stores.

    Each store owns one slice of server-derived state plus an ``is_loading``
    flag and the last failure message in ``error``. Async operations are
    serialized through a per-store lock, so ``is_loading`` is true exactly
    while one operation is running and overlapping callers queue behind it
    instead of clobbering each other's flags.

    Every write publishes :class:`~buglense.stores.events.StateChanged` on the
    injected event bus.
    """

    #: Name carried by the store's ``StateChanged`` events.
    name = "store"

    def __init__(self, api: ApiClient, event_bus: EventBus) -> None:
        self._api = api
        self._bus = event_bus
        self._lock = asyncio.Lock()
        self._pending = 0
        self.is_loading = False
        self.error: str | None = None

    @property
    def pending_operations(self) -> int:
        """Number of operations queued on or running under the store lock."""

        return self._pending

    # ------------------------------------------------------------------
    # Operation protocol
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _operation(self, fallback: str, *, reraise: bool = True) -> AsyncIterator[None]:
        """Run the body as one serialized store operation.

        On entry ``is_loading`` is set and ``error`` cleared. On failure
        ``error`` becomes the exception's message (or ``fallback`` when the
        message is empty). Mutations pass ``reraise=True`` so the caller sees
        the failure; reads pass ``reraise=False`` and the failure only lands
        in ``error``.
        """

        self._pending += 1
        try:
            async with self._lock:
                self.is_loading = True
                self.error = None
                self._changed("is_loading", "error")
                try:
                    yield
                except asyncio.CancelledError:
                    self.is_loading = False
                    self._changed("is_loading")
                    raise
                except Exception as exc:
                    self.is_loading = False
                    self.error = str(exc) or fallback
                    self._changed("is_loading", "error")
                    if reraise:
                        raise
                    LOGGER.debug("%s: %s", fallback, self.error)
                else:
                    self.is_loading = False
                    self._changed("is_loading")
        finally:
            self._pending -= 1

    def _changed(self, *fields: str) -> None:
        if fields:
            self._bus.publish(StateChanged(store=self.name, fields=tuple(fields)))

    def _reset_bookkeeping(self) -> None:
        self.is_loading = False
        self.error = None


# ----------------------------------------------------------------------
# Collection helpers
# ----------------------------------------------------------------------


def replace_by_id(items: Iterable[T], item_id: str, replacement: T) -> list[T]:
    return [replacement if getattr(item, "id", None) == item_id else item for item in items]


def remove_by_id(items: Iterable[T], item_id: str) -> list[T]:
    return [item for item in items if getattr(item, "id", None) != item_id]


def refresh_selection(selected: T | None, item_id: str, replacement: T | None) -> T | None:
    """Return the selection after the entity ``item_id`` was updated or deleted."""

    if selected is not None and getattr(selected, "id", None) == item_id:
        return replacement
    return selected


def parse_many(payload: object, factory: Callable[[dict], T]) -> list[T]:
    if not isinstance(payload, list):
        raise ValueError("Expected a list in the response envelope")
    return [factory(item) for item in payload]


__all__ = [
    "DomainStore",
    "parse_many",
    "refresh_selection",
    "remove_by_id",
    "replace_by_id",
]
