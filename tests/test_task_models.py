# tests/test_task_models.py

from __future__ import annotations

import uuid

import pytest

from todolite.tasks.task_models import (
    DEFAULT_CATEGORY,
    TEXT_MAX_LENGTH,
    Priority,
    Task,
    TaskValidationError,
    is_iso_timestamp,
)


def test_create_applies_defaults() -> None:
    task = Task.create("  Buy milk  ")

    assert task.text == "Buy milk"
    assert task.completed is False
    assert task.priority is Priority.MEDIUM
    assert task.category == DEFAULT_CATEGORY
    assert task.order == 0
    assert task.created_at == task.updated_at
    assert is_iso_timestamp(task.created_at)
    assert uuid.UUID(task.id).version == 4
    assert task.is_valid()


def test_create_generates_unique_ids() -> None:
    ids = {Task.create(f"t{i}").id for i in range(50)}
    assert len(ids) == 50


@pytest.mark.parametrize("bad", ["", "   ", None, 42, "x" * (TEXT_MAX_LENGTH + 1)])
def test_create_rejects_bad_text(bad) -> None:
    with pytest.raises(TaskValidationError):
        Task.create(bad)


def test_create_accepts_max_length_text() -> None:
    assert len(Task.create("x" * TEXT_MAX_LENGTH).text) == TEXT_MAX_LENGTH


def test_id_cannot_be_reassigned() -> None:
    task = Task.create("Walk dog")
    with pytest.raises(AttributeError):
        task.id = "other-id"


def test_update_ignores_unknown_fields_and_bumps_updated_at() -> None:
    task = Task.create("Walk dog", priority="high")
    task.updated_at = "2000-01-01T00:00:00.000+00:00"

    task.update({"bogus": 1, "id": "hijack", "created_at": "nope"})

    assert task.text == "Walk dog"
    assert task.priority is Priority.HIGH
    assert task.id != "hijack"
    assert task.created_at != "nope"
    assert task.updated_at != "2000-01-01T00:00:00.000+00:00"


def test_update_applies_whitelisted_fields() -> None:
    task = Task.create("Walk dog")
    task.update({"text": " Walk the dog ", "completed": True, "priority": "low", "category": "home"})

    assert task.text == "Walk the dog"
    assert task.completed is True
    assert task.priority is Priority.LOW
    assert task.category == "home"


def test_toggle_flips_completed() -> None:
    task = Task.create("Walk dog")
    task.toggle()
    assert task.completed is True
    task.toggle()
    assert task.completed is False


def test_serialize_deserialize_round_trip() -> None:
    task = Task.create("Buy milk", priority="high", category="shopping")
    task.toggle()

    restored = Task.deserialize(task.serialize())

    assert restored == task
    assert restored is not task


def test_copy_is_independent() -> None:
    task = Task.create("Buy milk")
    clone = task.copy()
    clone.toggle()
    assert task.completed is False
    assert clone.id == task.id


@pytest.mark.parametrize(
    "record",
    [
        None,
        "not a record",
        {"text": "no id", "created_at": "2024-01-01T00:00:00+00:00"},
        {"id": "abc12", "text": "   ", "created_at": "2024-01-01T00:00:00+00:00"},
        {"id": "abc12", "text": "ok", "completed": "yes", "created_at": "2024-01-01T00:00:00+00:00"},
        {"id": "abc12", "text": "ok", "order": -1, "created_at": "2024-01-01T00:00:00+00:00"},
        {"id": "abc12", "text": "ok", "created_at": "yesterday"},
        {"id": "abc12", "text": "ok", "order": float("inf"), "created_at": "2024-01-01T00:00:00+00:00"},
        {"id": "abc12", "text": "ok", "order": float("nan"), "created_at": "2024-01-01T00:00:00+00:00"},
        {"id": "abc12", "text": "ok", "order": 1.5, "created_at": "2024-01-01T00:00:00+00:00"},
        {"id": "abc12", "text": "bad \ud800", "created_at": "2024-01-01T00:00:00+00:00"},
    ],
)
def test_deserialize_rejects_malformed_records(record) -> None:
    with pytest.raises(TaskValidationError):
        Task.deserialize(record)


def test_deserialize_normalizes_unknown_priority_and_empty_category() -> None:
    task = Task.deserialize(
        {
            "id": "abc12",
            "text": "ok",
            "priority": "urgent",
            "category": "  ",
            "created_at": "2024-01-01T00:00:00+00:00",
        }
    )
    assert task.priority is Priority.MEDIUM
    assert task.category == DEFAULT_CATEGORY
    assert task.updated_at == task.created_at


def test_is_valid_detects_broken_fields() -> None:
    task = Task.create("Buy milk")
    task.text = "   "
    assert not task.is_valid()


def test_deserialize_accepts_integral_float_order() -> None:
    task = Task.deserialize({"id": "abc12", "text": "ok", "order": 2.0, "created_at": "2024-01-01T00:00:00+00:00"})
    assert task.order == 2
    assert isinstance(task.order, int)


def test_unencodable_text_and_category() -> None:
    with pytest.raises(TaskValidationError):
        Task.create("bad \ud800 text")

    assert Task.create("ok", category="\udfff").category == DEFAULT_CATEGORY
    task = Task.deserialize(
        {"id": "abc12", "text": "ok", "category": "home\ud800", "created_at": "2024-01-01T00:00:00+00:00"}
    )
    assert task.category == DEFAULT_CATEGORY
