# src/todolite/core/app.py

"""
Application facade.

Owns one AppState + StorageService + EventBus triple (no process-wide
singleton) and runs every user request through the same pipeline:
validate -> sanitize -> mutate state -> emit events -> autosave.
"""

from __future__ import annotations

import logging
from typing import Any

from ..storage.service import StorageInfo, StorageService
from ..tasks.task_models import Task, TaskValidationError
from ..tasks.validation import (
    ValidationResult,
    sanitize_category,
    sanitize_priority,
    sanitize_task,
    sanitize_text,
    validate_task,
    validate_update,
)
from .events import (
    STATE_CHANGED,
    SYNC_APPLIED,
    TASK_CREATED,
    TASK_DELETED,
    TASK_REORDERED,
    TASK_UPDATED,
    TASKS_CLEARED,
    VALIDATION_ERROR,
    EventBus,
    EventHandler,
)
from .state import AppState, TaskFilters, TaskStats

logger = logging.getLogger(__name__)


def _comparable(state: AppState) -> dict[str, Any]:
    data = state.serialize()
    data.pop("last_sync", None)
    return data


class TodoApp:
    def __init__(
        self,
        state: AppState,
        storage: StorageService,
        events: EventBus | None = None,
        *,
        autosave: bool = True,
    ) -> None:
        self.state = state
        self.storage = storage
        self.events = events if events is not None else storage.events
        self.autosave = autosave
        self.last_validation: ValidationResult | None = None
        self._unsubscribe_sync = storage.on_external_change(self.apply_external_state)

    def close(self) -> None:
        self._unsubscribe_sync()

    # ---- events ----

    def on(self, event_name: str, handler: EventHandler):
        return self.events.on(event_name, handler)

    def off(self, event_name: str, handler: EventHandler) -> None:
        self.events.off(event_name, handler)

    # ---- queries ----

    @property
    def stats(self) -> TaskStats:
        return self.state.stats

    @property
    def filters(self) -> TaskFilters:
        return self.state.filters

    def filtered_tasks(self) -> list[Task]:
        return self.state.get_filtered_tasks()

    def get_task(self, task_id: str) -> Task | None:
        return self.state.get_task(task_id)

    # ---- commands ----

    def add_task(self, text: Any, *, priority: Any = None, category: Any = None) -> str | None:
        candidate: dict[str, Any] = {"text": text}
        if priority is not None:
            candidate["priority"] = priority
        if category is not None:
            candidate["category"] = category

        if not self._check(validate_task(candidate)):
            return None

        clean = sanitize_task(candidate)
        try:
            task = Task.create(clean["text"], priority=clean["priority"], category=clean["category"])
        except TaskValidationError as e:
            # e.g. text made only of angle brackets is empty once sanitized
            self._check(ValidationResult.of([str(e)], []))
            return None

        added = self.state.add_task(task)
        logger.info("Task created id=%s", added.id)
        self.events.emit(TASK_CREATED, {"task": added.serialize()})
        self._changed()
        return added.id

    def toggle_task(self, task_id: str) -> bool:
        if not self.state.toggle_task(task_id):
            return False
        task = self.state.get_task(task_id)
        self.events.emit(TASK_UPDATED, {"task_id": task_id, "completed": task.completed if task else None})
        self._changed()
        return True

    def update_task(self, task_id: str, **fields: Any) -> bool:
        if not self._check(validate_update(fields)):
            return False

        clean = dict(fields)
        if "text" in clean:
            clean["text"] = sanitize_text(clean["text"])
            if not clean["text"]:
                self._check(ValidationResult.of(["Task text cannot be empty"], []))
                return False
        if "priority" in clean:
            clean["priority"] = sanitize_priority(clean["priority"])
        if "category" in clean:
            clean["category"] = sanitize_category(clean["category"])

        if not self.state.update_task(task_id, clean):
            return False
        self.events.emit(TASK_UPDATED, {"task_id": task_id, **clean})
        self._changed()
        return True

    def delete_task(self, task_id: str) -> bool:
        task = self.state.get_task(task_id)
        if task is None or not self.state.remove_task(task_id):
            return False
        self.events.emit(TASK_DELETED, {"task_id": task_id, "task": task.serialize()})
        self._changed()
        return True

    def reorder_task(self, task_id: str, new_index: int) -> bool:
        task = self.state.get_task(task_id)
        if task is None:
            return False
        index = max(0, min(int(new_index), len(self.state) - 1))
        if task.order == index:
            return True
        self.state.reorder_task(task_id, index)
        self.events.emit(TASK_REORDERED, {"task_id": task_id, "old_index": task.order, "new_index": index})
        self._changed()
        return True

    def clear_all(self) -> bool:
        if len(self.state) == 0:
            return False
        count = len(self.state)
        self.state.clear()
        self.events.emit(TASKS_CLEARED, {"count": count})
        self._changed()
        return True

    def set_filters(self, **changes: Any) -> TaskFilters:
        filters = self.state.set_filters(**changes)
        self.events.emit(STATE_CHANGED, {"reason": "filters"})
        return filters

    # ---- persistence ----

    def save(self) -> bool:
        return self.storage.save(self.state)

    def load(self) -> AppState:
        self.state = self.storage.load()
        self.events.emit(STATE_CHANGED, {"reason": "load"})
        return self.state

    def export_data(self) -> str | None:
        return self.storage.export_snapshot()

    def import_data(self, raw: str) -> bool:
        if not self.storage.import_snapshot(raw):
            return False
        self.load()
        return True

    def storage_info(self) -> StorageInfo:
        return self.storage.get_storage_info()

    def apply_external_state(self, new_state: AppState) -> bool:
        """
        Reconcile with a state written by another context.

        The incoming state replaces ours wholesale (foreign write wins) unless
        both serialize identically, ignoring last_sync.
        """
        if _comparable(new_state) == _comparable(self.state):
            logger.debug("External change matches local state; nothing to apply")
            return False
        self.state = new_state
        logger.info("Applied external state (%d tasks)", len(new_state))
        self.events.emit(SYNC_APPLIED, {"stats": new_state.stats})
        self.events.emit(STATE_CHANGED, {"reason": "sync"})
        return True

    # ---- internals ----

    def _check(self, result: ValidationResult) -> bool:
        self.last_validation = result
        if not result.is_valid:
            logger.info("Validation failed: %s", "; ".join(result.errors))
            self.events.emit(VALIDATION_ERROR, result)
            return False
        return True

    def _changed(self) -> None:
        self.events.emit(STATE_CHANGED, {"reason": "mutation", "stats": self.state.stats})
        if self.autosave:
            self.save()
