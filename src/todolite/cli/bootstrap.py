# src/todolite/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the key-value backend and wires StorageService + AppState + EventBus
  into one TodoApp.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.app import TodoApp
from ..core.events import EventBus
from ..core.ports import KeyValueStore
from ..core.state import AppState
from ..storage.memory_store import MemoryKeyValueStore
from ..storage.service import StorageService
from ..storage.sqlite_store import SqliteKeyValueStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def build_store(settings) -> KeyValueStore:
    if settings.storage_backend == "memory":
        logger.info("Using in-memory storage (nothing survives the process)")
        return MemoryKeyValueStore(max_bytes=settings.max_storage_bytes)
    return SqliteKeyValueStore(settings.db_path)


def create_app(*, settings=None, store: KeyValueStore | None = None, load: bool = True) -> TodoApp:
    """
    Create a TodoApp and (unless load=False) load the persisted state into it.

    Keeping settings/store injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    if store is None:
        try:
            _ensure_local_dirs(settings)
        except OSError:
            # The store reports itself unavailable; the session runs in memory only.
            logger.exception("Cannot create data dir %s", settings.data_dir)
        store = build_store(settings)

    events = EventBus()
    storage = StorageService(
        store,
        storage_key=settings.storage_key,
        max_bytes=settings.max_storage_bytes,
        events=events,
    )
    state = storage.load() if load else AppState()
    app = TodoApp(state, storage, events, autosave=settings.autosave)
    logger.info("App ready: %d task(s) under key=%s", len(app.state), settings.storage_key)
    return app
