# tests/test_storage_service.py

from __future__ import annotations

import json

import pytest

from todolite.core import events as ev
from todolite.core.events import EventBus, StorageDiagnostic
from todolite.core.state import AppState
from todolite.storage.errors import DataCorruptionError
from todolite.storage.memory_store import MemoryKeyValueStore
from todolite.storage.service import (
    DATA_VERSION,
    StorageService,
    StorageStatus,
    compute_checksum,
    format_bytes,
)
from todolite.tasks.task_models import Task

from .fakes import EventRecorder, FailingStore


def _state_with(*texts: str) -> AppState:
    state = AppState()
    for text in texts:
        state.add_task(Task.create(text))
    return state


def _stored(storage: StorageService) -> dict:
    return json.loads(storage.store.get_item(storage.storage_key))


def _write(storage: StorageService, envelope) -> None:
    raw = envelope if isinstance(envelope, str) else json.dumps(envelope)
    storage.store.set_item(storage.storage_key, raw)


def test_load_from_empty_store_returns_default(storage: StorageService, recorder: EventRecorder) -> None:
    state = storage.load()
    assert len(state) == 0
    assert storage.status() is StorageStatus.EMPTY
    assert recorder.seen == []


def test_save_then_load_round_trip(storage: StorageService, recorder: EventRecorder) -> None:
    state = _state_with("Buy milk", "Walk dog")
    state.toggle_task(state.tasks[0].id)

    assert storage.save(state)
    assert state.last_sync is not None
    assert recorder.names() == [ev.STORAGE_SAVED]

    loaded = storage.load()
    assert [t.serialize() for t in loaded.tasks] == [t.serialize() for t in state.tasks]
    assert loaded.stats == state.stats
    assert storage.status() is StorageStatus.PRESENT


def test_envelope_layout(storage: StorageService) -> None:
    storage.save(_state_with("Buy milk"))
    envelope = _stored(storage)

    assert set(envelope) == {"version", "timestamp", "state", "checksum"}
    assert envelope["version"] == DATA_VERSION
    assert envelope["checksum"] == compute_checksum(envelope["state"])
    assert envelope["state"]["tasks"][0]["text"] == "Buy milk"


def test_checksum_is_key_order_independent() -> None:
    assert compute_checksum({"a": 1, "b": [1, 2]}) == compute_checksum({"b": [1, 2], "a": 1})
    assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


def test_timestamp_is_outside_checksum(storage: StorageService, recorder: EventRecorder) -> None:
    storage.save(_state_with("Buy milk"))
    envelope = _stored(storage)
    envelope["timestamp"] = "1999-01-01T00:00:00.000+00:00"
    _write(storage, envelope)

    assert len(storage.load()) == 1
    assert ev.STORAGE_INTEGRITY_WARNING not in recorder.names()


def test_tampered_state_loads_with_integrity_warning(storage: StorageService, recorder: EventRecorder) -> None:
    storage.save(_state_with("Buy milk"))
    envelope = _stored(storage)
    envelope["state"]["tasks"][0]["text"] = "Buy beer"
    _write(storage, envelope)
    recorder.clear()

    loaded = storage.load()

    assert loaded.tasks[0].text == "Buy beer"
    assert recorder.names() == [ev.STORAGE_INTEGRITY_WARNING]
    assert storage.status() is StorageStatus.CORRUPTED


def test_corrupted_checksum_field_still_loads(storage: StorageService, recorder: EventRecorder) -> None:
    storage.save(_state_with("a", "b", "c"))
    envelope = _stored(storage)
    envelope["checksum"] = "0" * 64
    _write(storage, envelope)
    recorder.clear()

    loaded = storage.load()

    assert [t.text for t in loaded.tasks] == ["a", "b", "c"]
    warnings = recorder.of(ev.STORAGE_INTEGRITY_WARNING)
    assert len(warnings) == 1
    assert isinstance(warnings[0], StorageDiagnostic)
    assert warnings[0].detail["expected"] == "0" * 64


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        "[]",
        json.dumps({"version": "1.0.0", "timestamp": "t"}),
        json.dumps({"version": "1.0.0", "timestamp": "t", "state": {"tasks": "x"}}),
        json.dumps({"timestamp": "t", "state": {"tasks": []}}),
    ],
)
def test_structural_corruption_falls_back_to_default(storage: StorageService, recorder: EventRecorder, raw) -> None:
    _write(storage, raw)

    state = storage.load()

    assert len(state) == 0
    assert recorder.names() == [ev.STORAGE_CORRUPTED, ev.STORAGE_ERROR]
    assert storage.status() is StorageStatus.CORRUPTED

    with pytest.raises(DataCorruptionError):
        storage.load(strict=True)


def test_oversize_save_is_rejected(memory_store: MemoryKeyValueStore, events: EventBus, recorder: EventRecorder) -> None:
    storage = StorageService(memory_store, storage_key="k", max_bytes=200, events=events)
    state = _state_with("x" * 200)

    assert storage.save(state) is False
    assert state.last_sync is None
    assert memory_store.get_item("k") is None
    assert recorder.names() == [ev.STORAGE_QUOTA_EXCEEDED, ev.STORAGE_ERROR]


def test_store_quota_is_reported(events: EventBus, recorder: EventRecorder) -> None:
    store = MemoryKeyValueStore(max_bytes=300)
    storage = StorageService(store, storage_key="k", events=events)

    assert storage.save(_state_with("x" * 250)) is False
    assert ev.STORAGE_QUOTA_EXCEEDED in recorder.names()


def test_unavailable_store(events: EventBus, recorder: EventRecorder) -> None:
    storage = StorageService(MemoryKeyValueStore(enabled=False), storage_key="k", events=events)

    assert storage.is_available() is False
    assert storage.save(_state_with("a")) is False
    assert len(storage.load()) == 0
    assert storage.clear() is False
    assert storage.export_snapshot() is None
    assert storage.status() is StorageStatus.UNAVAILABLE
    assert storage.get_storage_info().available is False
    assert ev.STORAGE_UNAVAILABLE in recorder.names()


def test_generic_write_failure_is_contained(events: EventBus, recorder: EventRecorder) -> None:
    store = FailingStore(fail_key="k", error=OSError("disk on fire"))
    storage = StorageService(store, storage_key="k", events=events)

    assert storage.save(_state_with("a")) is False
    assert recorder.names() == [ev.STORAGE_ERROR]
    assert "disk on fire" in recorder.of(ev.STORAGE_ERROR)[0].message


def test_clear_is_idempotent(storage: StorageService) -> None:
    storage.save(_state_with("a"))
    assert storage.clear()
    assert storage.clear()
    assert storage.store.get_item(storage.storage_key) is None


def test_export_import_between_stores(storage: StorageService) -> None:
    assert storage.export_snapshot() is None
    storage.save(_state_with("Buy milk", "Walk dog"))
    raw = storage.export_snapshot()

    other = StorageService(MemoryKeyValueStore(), storage_key="other")
    assert other.import_snapshot(raw)
    assert [t.text for t in other.load().tasks] == ["Buy milk", "Walk dog"]


def test_invalid_import_keeps_existing_data(storage: StorageService, recorder: EventRecorder) -> None:
    storage.save(_state_with("keep me"))
    before = storage.export_snapshot()

    assert storage.import_snapshot("{\"version\": 1}") is False
    assert storage.export_snapshot() == before
    assert ev.STORAGE_CORRUPTED in recorder.names()


def test_import_too_large_is_rejected(memory_store: MemoryKeyValueStore) -> None:
    big = StorageService(memory_store, storage_key="big")
    big.save(_state_with(*["y" * 200 for _ in range(5)]))
    raw = big.export_snapshot()

    small = StorageService(MemoryKeyValueStore(), storage_key="small", max_bytes=500)
    assert small.import_snapshot(raw) is False


def test_storage_info(storage: StorageService) -> None:
    info = storage.get_storage_info()
    assert info.available and info.used == 0 and info.percentage == 0

    storage.save(_state_with("Buy milk"))
    raw = storage.store.get_item(storage.storage_key)
    info = storage.get_storage_info()
    assert info.used == len(raw.encode("utf-8"))
    assert info.total == 5 * 1024 * 1024
    assert info.percentage == round(info.used / info.total * 100)


@pytest.mark.parametrize(
    ("n", "text"),
    [(0, "0 Bytes"), (512, "512 Bytes"), (1024, "1 KB"), (1536, "1.5 KB"), (5 * 1024 * 1024, "5 MB")],
)
def test_format_bytes(n, text) -> None:
    assert format_bytes(n) == text


def test_external_change_delivers_new_state() -> None:
    tab_a = MemoryKeyValueStore()
    tab_b = tab_a.open_view()
    writer = StorageService(tab_a, storage_key="k")
    reader = StorageService(tab_b, storage_key="k")

    received: list[AppState] = []
    unsubscribe = reader.on_external_change(received.append)

    writer.save(_state_with("Buy milk"))
    assert [s.tasks[0].text for s in received] == ["Buy milk"]

    tab_a.set_item("other-key", "{}")
    tab_a.set_item("k", "garbage")
    writer.clear()
    assert len(received) == 1

    unsubscribe()
    writer.save(_state_with("Walk dog"))
    assert len(received) == 1


def test_own_writes_are_not_reported(storage: StorageService) -> None:
    received: list[AppState] = []
    storage.on_external_change(received.append)
    storage.save(_state_with("Buy milk"))
    assert received == []
