# tests/fakes.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from todolite.core import events as ev
from todolite.core.events import EventBus
from todolite.core.ports import ChangeListener, Unsubscribe

ALL_EVENTS = [
    ev.STATE_CHANGED,
    ev.STORAGE_SAVED,
    ev.STORAGE_ERROR,
    ev.STORAGE_QUOTA_EXCEEDED,
    ev.STORAGE_UNAVAILABLE,
    ev.STORAGE_CORRUPTED,
    ev.STORAGE_INTEGRITY_WARNING,
    ev.SYNC_APPLIED,
    ev.VALIDATION_ERROR,
    ev.TASK_CREATED,
    ev.TASK_UPDATED,
    ev.TASK_DELETED,
    ev.TASK_REORDERED,
    ev.TASKS_CLEARED,
]


@dataclass(slots=True)
class EventRecorder:
    """
    Captures every event emitted on a bus for assertions.
    """

    seen: list[tuple[str, Any]] = field(default_factory=list)

    def attach(self, bus: EventBus, names: list[str] | None = None) -> EventRecorder:
        for name in names or ALL_EVENTS:
            bus.on(name, lambda payload, _name=name: self.seen.append((_name, payload)))
        return self

    def names(self) -> list[str]:
        return [name for name, _ in self.seen]

    def of(self, name: str) -> list[Any]:
        return [payload for n, payload in self.seen if n == name]

    def clear(self) -> None:
        self.seen.clear()


class FailingStore:
    """
    KeyValueStore whose writes to one key raise `error`.

    The availability probe uses a different key, so the store looks healthy
    until the real write happens.
    """

    def __init__(self, *, fail_key: str, error: Exception) -> None:
        self.fail_key = fail_key
        self.error = error
        self.data: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self.data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if key == self.fail_key:
            raise self.error
        self.data[key] = value

    def remove_item(self, key: str) -> None:
        self.data.pop(key, None)

    def subscribe(self, listener: ChangeListener) -> Unsubscribe:
        return lambda: None
