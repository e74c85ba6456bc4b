# src/todolite/core/events.py

"""In-process event bus used by the state/storage pair to notify the UI layer."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any

logger = logging.getLogger(__name__)

STATE_CHANGED = "state:changed"
STORAGE_SAVED = "storage:saved"
STORAGE_ERROR = "storage:error"
STORAGE_QUOTA_EXCEEDED = "storage:quota_exceeded"
STORAGE_UNAVAILABLE = "storage:unavailable"
STORAGE_CORRUPTED = "storage:corrupted"
STORAGE_INTEGRITY_WARNING = "storage:integrity_warning"
SYNC_APPLIED = "sync:applied"
VALIDATION_ERROR = "validation:error"

TASK_CREATED = "task:created"
TASK_UPDATED = "task:updated"
TASK_DELETED = "task:deleted"
TASK_REORDERED = "task:reordered"
TASKS_CLEARED = "tasks:cleared"

EventHandler = Callable[[Any], None]


@dataclass(frozen=True, slots=True)
class StorageDiagnostic:
    """Payload of the storage:* failure events."""

    kind: str
    message: str
    storage_key: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    detail: dict[str, Any] = field(default_factory=dict)


class EventBus:
    """
    Synchronous pub/sub keyed by event name.

    A handler that raises is logged and skipped; the remaining handlers
    still run and the emitter never sees the exception.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._lock = RLock()

    def on(self, event_name: str, handler: EventHandler) -> Callable[[], None]:
        with self._lock:
            handlers = self._handlers.setdefault(event_name, [])
            if handler not in handlers:
                handlers.append(handler)

        def _unsubscribe() -> None:
            self.off(event_name, handler)

        return _unsubscribe

    def off(self, event_name: str, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.get(event_name)
            if handlers and handler in handlers:
                handlers.remove(handler)

    def emit(self, event_name: str, payload: Any = None) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event_name, ()))

        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Event handler error for %s", event_name)

    def handler_count(self, event_name: str) -> int:
        with self._lock:
            return len(self._handlers.get(event_name, ()))
