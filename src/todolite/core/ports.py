# src/todolite/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The storage service depends on these Protocols instead of concrete backends,
so the same state/storage logic runs over an in-process store, SQLite, or any
other key-value mechanism with a change-notification source plugged in.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class StorageChange:
    """A write made by another context; new_value is None when the key was removed."""

    key: str
    new_value: str | None


ChangeListener = Callable[[StorageChange], None]
Unsubscribe = Callable[[], None]


class KeyValueStore(Protocol):
    """
    Durable string key-value store (localStorage-like).

    Implementations raise StorageUnavailableError when the mechanism cannot
    be used at all and QuotaExceededError when a write does not fit.
    Listeners only hear about writes made by *other* contexts.
    """

    def get_item(self, key: str) -> str | None: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...
    def subscribe(self, listener: ChangeListener) -> Unsubscribe: ...


class PollingKeyValueStore(KeyValueStore, Protocol):
    """A store whose foreign writes are discovered by polling (see storage.watcher)."""

    def poll_changes(self) -> list[StorageChange]: ...
