# src/todolite/tasks/task_models.py

from __future__ import annotations

import math
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

TEXT_MAX_LENGTH = 255
CATEGORY_MAX_LENGTH = 50
DEFAULT_CATEGORY = "general"

UPDATABLE_FIELDS = frozenset({"text", "completed", "priority", "category", "order"})


class TaskValidationError(ValueError):
    """Raised when a task cannot be built from the given values."""


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, raw: Any, default: Priority | None = None) -> Priority:
        """Map a stored/raw value to a Priority, falling back to MEDIUM."""
        fallback = cls.MEDIUM if default is None else default
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str) or not raw:
            return fallback
        try:
            return cls(raw)
        except ValueError:
            return fallback


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def is_iso_timestamp(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        datetime.fromisoformat(value)
    except ValueError:
        return False
    return True


def _is_storable(value: str) -> bool:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _new_task_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class Task:
    """
    One to-do item.

    Notes:
    - `id` is assigned once and cannot be reassigned afterwards.
    - fields change only through update()/toggle(), both refresh `updated_at`.
    - `order` is owned by AppState and renumbered on structural changes.
    """

    text: str
    completed: bool = False
    priority: Priority = Priority.MEDIUM
    category: str = DEFAULT_CATEGORY
    id: str = field(default_factory=_new_task_id)
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = ""
    order: int = 0

    def __post_init__(self) -> None:
        if not self.updated_at:
            self.updated_at = self.created_at

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "id" and hasattr(self, "id"):
            raise AttributeError("Task.id is immutable")
        object.__setattr__(self, name, value)

    @classmethod
    def create(
        cls,
        text: Any,
        completed: bool = False,
        priority: Any = None,
        category: Any = None,
    ) -> Task:
        if not isinstance(text, str):
            raise TaskValidationError("Task text is required and must be a string")
        clean = text.strip()
        if not clean:
            raise TaskValidationError("Task text cannot be empty")
        if len(clean) > TEXT_MAX_LENGTH:
            raise TaskValidationError(f"Task text cannot exceed {TEXT_MAX_LENGTH} characters")
        if not _is_storable(clean):
            raise TaskValidationError("Task text contains characters that cannot be stored")

        cat = category.strip() if isinstance(category, str) and _is_storable(category) else ""
        now = utc_now_iso()
        return cls(
            text=clean,
            completed=bool(completed),
            priority=Priority.parse(priority),
            category=cat[:CATEGORY_MAX_LENGTH] or DEFAULT_CATEGORY,
            created_at=now,
            updated_at=now,
        )

    def update(self, fields: Mapping[str, Any]) -> None:
        """
        Apply whitelisted fields (text, completed, priority, category, order).

        Unknown keys are ignored. `updated_at` is refreshed even when nothing
        was applied.
        """
        for key, value in fields.items():
            if key not in UPDATABLE_FIELDS:
                continue
            if key == "text":
                self.text = str(value).strip()
            elif key == "completed":
                self.completed = bool(value)
            elif key == "priority":
                self.priority = Priority.parse(value, default=self.priority)
            elif key == "category":
                self.category = str(value).strip() or DEFAULT_CATEGORY
            elif key == "order":
                self.order = max(0, int(value))
        self.updated_at = utc_now_iso()

    def toggle(self) -> None:
        self.completed = not self.completed
        self.updated_at = utc_now_iso()

    def copy(self) -> Task:
        return replace(self)

    def is_valid(self) -> bool:
        return (
            isinstance(self.id, str)
            and len(self.id) > 0
            and isinstance(self.text, str)
            and len(self.text.strip()) > 0
            and isinstance(self.completed, bool)
            and isinstance(self.priority, Priority)
            and isinstance(self.category, str)
            and is_iso_timestamp(self.created_at)
            and is_iso_timestamp(self.updated_at)
            and isinstance(self.order, int)
            and not isinstance(self.order, bool)
            and self.order >= 0
        )

    def serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "completed": self.completed,
            "priority": self.priority.value,
            "category": self.category,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "order": self.order,
        }

    @classmethod
    def deserialize(cls, record: Any) -> Task:
        """
        Rebuild a Task from a plain record (storage or snapshot origin).

        The record is not trusted: shape problems raise TaskValidationError.
        """
        if not isinstance(record, Mapping):
            raise TaskValidationError("Task record must be an object")

        task_id = record.get("id")
        if not isinstance(task_id, str) or not task_id or not _is_storable(task_id):
            raise TaskValidationError("Task record has no usable id")

        text = record.get("text")
        if not isinstance(text, str) or not text.strip():
            raise TaskValidationError(f"Task {task_id} has no text")
        if not _is_storable(text):
            raise TaskValidationError(f"Task {task_id} has text that cannot be stored")

        completed = record.get("completed", False)
        if not isinstance(completed, bool):
            raise TaskValidationError(f"Task {task_id} has a non-boolean completed flag")

        order = record.get("order", 0)
        if isinstance(order, bool) or not isinstance(order, int | float) or order < 0:
            raise TaskValidationError(f"Task {task_id} has an invalid order")
        if isinstance(order, float) and not (math.isfinite(order) and order.is_integer()):
            raise TaskValidationError(f"Task {task_id} has an invalid order")

        created_at = record.get("created_at")
        updated_at = record.get("updated_at", created_at)
        if not is_iso_timestamp(created_at) or not is_iso_timestamp(updated_at):
            raise TaskValidationError(f"Task {task_id} has malformed timestamps")

        category = record.get("category")
        if not isinstance(category, str) or not _is_storable(category):
            category = ""
        return cls(
            id=task_id,
            text=text.strip(),
            completed=completed,
            priority=Priority.parse(record.get("priority")),
            category=category.strip() or DEFAULT_CATEGORY,
            created_at=created_at,
            updated_at=updated_at,
            order=int(order),
        )
