# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from todolite.core.app import TodoApp
from todolite.core.events import EventBus
from todolite.core.state import AppState
from todolite.storage.memory_store import MemoryKeyValueStore
from todolite.storage.service import StorageService

from .fakes import EventRecorder


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the CLI bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="todolite-test",
        log_level="DEBUG",
        data_dir=tmp_path / "data",
        storage_backend="sqlite",
        db_path=tmp_path / "data" / "todolite.sqlite3",
        storage_key="todolite_test",
        max_storage_bytes=5 * 1024 * 1024,
        autosave=True,
        watch_interval_seconds=0.01,
    )


@pytest.fixture()
def events() -> EventBus:
    return EventBus()


@pytest.fixture()
def recorder(events: EventBus) -> EventRecorder:
    return EventRecorder().attach(events)


@pytest.fixture()
def memory_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture()
def storage(memory_store: MemoryKeyValueStore, events: EventBus) -> StorageService:
    return StorageService(memory_store, storage_key="todolite_test", events=events)


@pytest.fixture()
def app(storage: StorageService, events: EventBus) -> TodoApp:
    """
    TodoApp over an in-memory store.

    NOTE: autosave stays on so every mutation also goes through StorageService.
    """
    return TodoApp(AppState(), storage, events, autosave=True)
