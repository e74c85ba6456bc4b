# tests/test_bootstrap.py

from __future__ import annotations

from dataclasses import replace
from types import SimpleNamespace

from todolite.cli.bootstrap import build_store, create_app
from todolite.config import Settings
from todolite.storage.memory_store import MemoryKeyValueStore
from todolite.storage.sqlite_store import SqliteKeyValueStore


def test_build_store_picks_backend(settings: SimpleNamespace) -> None:
    assert isinstance(build_store(settings), SqliteKeyValueStore)
    settings.storage_backend = "memory"
    assert isinstance(build_store(settings), MemoryKeyValueStore)


def test_create_app_persists_across_sessions(settings: SimpleNamespace) -> None:
    first = create_app(settings=settings)
    assert settings.db_path.exists()
    first.add_task("Buy milk")
    first.close()

    second = create_app(settings=settings)
    assert [t.text for t in second.state.tasks] == ["Buy milk"]
    assert second.autosave is True


def test_create_app_with_injected_store(settings: SimpleNamespace) -> None:
    store = MemoryKeyValueStore()
    app = create_app(settings=settings, store=store, load=False)
    assert app.storage.store is store
    assert app.storage.storage_key == "todolite_test"
    assert not settings.data_dir.exists()


def test_create_app_accepts_real_settings(tmp_path) -> None:
    base = Settings.from_env()
    settings = replace(base, data_dir=tmp_path, db_path=tmp_path / "t.sqlite3", storage_backend="sqlite")
    app = create_app(settings=settings)
    assert len(app.state) == 0
    assert app.storage_info().available
