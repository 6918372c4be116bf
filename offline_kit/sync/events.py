"""
Synchronous event emission for the sync queue.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from offline_kit.models.records import QueuedOperation

log = logging.getLogger(__name__)


class SyncEventType(str, Enum):
    """Kinds of events a SyncQueue emits."""

    ENQUEUED = "enqueued"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass
class SyncEvent:
    """A queue lifecycle or connectivity event."""

    type: SyncEventType
    operation: QueuedOperation | None = None


SyncEventListener = Callable[[SyncEvent], None]


class EventEmitter:
    """
    Keeps an ordered list of listeners and invokes them synchronously.

    A listener that raises is logged and skipped; the remaining listeners still
    run.
    """

    def __init__(self):
        self._listeners: list[SyncEventListener] = []

    def on(self, listener: SyncEventListener) -> Callable[[], None]:
        """Registers a listener and returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: SyncEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                log.warning(f"Sync event listener failed on '{event.type.value}': {e}")

    def __len__(self) -> int:
        return len(self._listeners)
