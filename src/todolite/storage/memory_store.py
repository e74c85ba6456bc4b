# src/todolite/storage/memory_store.py

from __future__ import annotations

import logging
from threading import RLock

from ..core.ports import ChangeListener, StorageChange, Unsubscribe
from .errors import QuotaExceededError, StorageUnavailableError

logger = logging.getLogger(__name__)


class SharedMemoryArea:
    """
    Key-value data shared by several MemoryKeyValueStore views.

    Each view plays the role of one browsing context ("tab"): a write through
    one view is broadcast to every other attached view, never to the writer.
    """

    def __init__(self, *, max_bytes: int | None = None) -> None:
        self.max_bytes = max_bytes
        self._data: dict[str, str] = {}
        self._views: list[MemoryKeyValueStore] = []
        self._lock = RLock()

    def attach(self, view: MemoryKeyValueStore) -> None:
        with self._lock:
            if view not in self._views:
                self._views.append(view)

    def detach(self, view: MemoryKeyValueStore) -> None:
        with self._lock:
            if view in self._views:
                self._views.remove(view)

    def used_bytes(self, *, replacing: str | None = None, value: str = "") -> int:
        with self._lock:
            total = 0
            for k, v in self._data.items():
                if k == replacing:
                    continue
                total += len(k.encode("utf-8")) + len(v.encode("utf-8"))
            if replacing is not None:
                total += len(replacing.encode("utf-8")) + len(value.encode("utf-8"))
            return total

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str, *, origin: MemoryKeyValueStore) -> None:
        with self._lock:
            if self.max_bytes is not None:
                needed = self.used_bytes(replacing=key, value=value)
                if needed > self.max_bytes:
                    raise QuotaExceededError(
                        f"Memory store quota exceeded: {needed} > {self.max_bytes} bytes"
                    )
            self._data[key] = value
            views = [v for v in self._views if v is not origin]
        self._broadcast(views, StorageChange(key=key, new_value=value))

    def delete(self, key: str, *, origin: MemoryKeyValueStore) -> None:
        with self._lock:
            if key not in self._data:
                return
            del self._data[key]
            views = [v for v in self._views if v is not origin]
        self._broadcast(views, StorageChange(key=key, new_value=None))

    @staticmethod
    def _broadcast(views: list[MemoryKeyValueStore], change: StorageChange) -> None:
        for view in views:
            view._notify(change)


class MemoryKeyValueStore:
    """In-process store view; see SharedMemoryArea for cross-view notification."""

    def __init__(
        self,
        area: SharedMemoryArea | None = None,
        *,
        max_bytes: int | None = None,
        enabled: bool = True,
    ) -> None:
        self.area = area if area is not None else SharedMemoryArea(max_bytes=max_bytes)
        self.enabled = enabled
        self._listeners: list[ChangeListener] = []
        self.area.attach(self)

    def open_view(self, *, enabled: bool = True) -> MemoryKeyValueStore:
        """Another context over the same data (a second "tab")."""
        return MemoryKeyValueStore(self.area, enabled=enabled)

    def close(self) -> None:
        self.area.detach(self)
        self._listeners.clear()

    def _ensure_enabled(self) -> None:
        if not self.enabled:
            raise StorageUnavailableError("Memory store is disabled")

    def get_item(self, key: str) -> str | None:
        self._ensure_enabled()
        return self.area.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._ensure_enabled()
        self.area.put(key, value, origin=self)

    def remove_item(self, key: str) -> None:
        self._ensure_enabled()
        self.area.delete(key, origin=self)

    def subscribe(self, listener: ChangeListener) -> Unsubscribe:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, change: StorageChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Storage change listener failed key=%s", change.key)
