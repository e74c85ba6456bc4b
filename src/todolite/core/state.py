# src/todolite/core/state.py

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from ..tasks.task_models import Task, TaskValidationError

logger = logging.getLogger(__name__)

FILTER_ALL = "all"
STATUS_VALUES = ("all", "completed", "pending")
_STATUS_ALIASES = {"active": "pending"}


@dataclass(frozen=True, slots=True)
class TaskStats:
    total: int = 0
    completed: int = 0
    pending: int = 0
    completion_rate: int = 0

    @classmethod
    def compute(cls, tasks: list[Task]) -> TaskStats:
        total = len(tasks)
        done = sum(1 for t in tasks if t.completed)
        rate = 0
        if total > 0:
            # Half-up, so 50% of 1/2 style values never round to even.
            rate = int((Decimal(done * 100) / Decimal(total)).quantize(Decimal(1), ROUND_HALF_UP))
        return cls(total=total, completed=done, pending=total - done, completion_rate=rate)


@dataclass(frozen=True, slots=True)
class TaskFilters:
    category: str = FILTER_ALL
    priority: str = FILTER_ALL
    status: str = FILTER_ALL
    search: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> TaskFilters:
        if not isinstance(data, Mapping):
            return cls()
        return cls().merged(data)

    def merged(self, changes: Mapping[str, Any]) -> TaskFilters:
        known = {f.name for f in fields(self)}
        clean: dict[str, str] = {}
        for key, value in changes.items():
            if key not in known:
                logger.warning("Ignoring unknown filter key %r", key)
                continue
            if value is None:
                continue
            value = str(value)
            if key == "status":
                value = _STATUS_ALIASES.get(value, value)
                if value not in STATUS_VALUES:
                    logger.warning("Ignoring unknown status filter %r", value)
                    continue
            clean[key] = value
        return replace(self, **clean)

    def matches(self, task: Task) -> bool:
        if self.category != FILTER_ALL and task.category != self.category:
            return False
        if self.priority != FILTER_ALL and task.priority != self.priority:
            return False
        if self.status == "completed" and not task.completed:
            return False
        if self.status == "pending" and task.completed:
            return False
        if self.search and self.search.lower() not in task.text.lower():
            return False
        return True


class AppState:
    """
    In-memory owner of all tasks, derived statistics and the active filters.

    Ownership rules:
    - tasks are only mutated through this class (accessors hand out copies),
    - `stats` is a frozen snapshot replaced after every mutation,
    - after add/remove/reorder/clear the `order` values are exactly 0..N-1.
    """

    def __init__(self) -> None:
        self._tasks: list[Task] = []
        self.next_order_id = 0
        self.last_sync: str | None = None
        self._filters = TaskFilters()
        self._stats = TaskStats()

    # ---- read side ----

    @property
    def stats(self) -> TaskStats:
        return self._stats

    @property
    def filters(self) -> TaskFilters:
        return self._filters

    @property
    def tasks(self) -> list[Task]:
        return [t.copy() for t in sorted(self._tasks, key=lambda t: t.order)]

    def __len__(self) -> int:
        return len(self._tasks)

    def get_task(self, task_id: str) -> Task | None:
        task = self._find(task_id)
        return task.copy() if task is not None else None

    def get_filtered_tasks(self) -> list[Task]:
        flt = self._filters
        return [t.copy() for t in sorted(self._tasks, key=lambda t: t.order) if flt.matches(t)]

    # ---- mutations ----

    def add_task(self, task: Task) -> Task:
        if self._find(task.id) is not None:
            raise ValueError(f"Duplicate task id: {task.id}")
        # The caller keeps its object; the state owns a private copy.
        owned = task.copy()
        owned.update({"order": self.next_order_id})
        self.next_order_id += 1
        self._tasks.append(owned)
        self._update_stats()
        logger.debug("Task added id=%s order=%s", owned.id, owned.order)
        return owned.copy()

    def update_task(self, task_id: str, fields: Mapping[str, Any]) -> bool:
        task = self._find(task_id)
        if task is None:
            logger.debug("update_task: no task id=%s", task_id)
            return False
        changes = dict(fields)
        new_order = changes.pop("order", None)
        task.update(changes)
        if new_order is not None:
            # A direct order write is a move; keep 0..N-1 intact.
            return self.reorder_task(task_id, int(new_order))
        self._update_stats()
        return True

    def toggle_task(self, task_id: str) -> bool:
        task = self._find(task_id)
        if task is None:
            return False
        task.toggle()
        self._update_stats()
        return True

    def remove_task(self, task_id: str) -> bool:
        task = self._find(task_id)
        if task is None:
            logger.debug("remove_task: no task id=%s", task_id)
            return False
        self._tasks.remove(task)
        self._renumber(sorted(self._tasks, key=lambda t: t.order))
        self._update_stats()
        return True

    def reorder_task(self, task_id: str, new_index: int) -> bool:
        task = self._find(task_id)
        if task is None:
            return False
        ordered = sorted(self._tasks, key=lambda t: t.order)
        ordered.remove(task)
        index = max(0, min(int(new_index), len(ordered)))
        ordered.insert(index, task)
        self._renumber(ordered)
        self._update_stats()
        return True

    def clear(self) -> None:
        self._tasks = []
        self.next_order_id = 0
        self._filters = TaskFilters()
        self._update_stats()

    def set_filters(self, **changes: Any) -> TaskFilters:
        self._filters = self._filters.merged(changes)
        return self._filters

    # ---- serialization ----

    def serialize(self) -> dict[str, Any]:
        return {
            "tasks": [t.serialize() for t in self._tasks],
            "next_order_id": self.next_order_id,
            "last_sync": self.last_sync,
            "filters": asdict(self._filters),
        }

    @classmethod
    def deserialize(cls, data: Any) -> AppState:
        """
        Build a state from serialized data.

        Malformed input never raises: the problem is logged and an empty
        state (or the readable part of the data) is returned.
        """
        state = cls()
        if not isinstance(data, Mapping):
            logger.error("Cannot import state: expected an object, got %s", type(data).__name__)
            return state

        try:
            raw_tasks = data.get("tasks") or []
            if not isinstance(raw_tasks, list):
                raise TypeError("tasks must be a list")
            state._tasks = cls._load_tasks(raw_tasks)

            counter = data.get("next_order_id", 0)
            if isinstance(counter, bool) or not isinstance(counter, int) or counter < 0:
                counter = 0
            state.next_order_id = max(counter, len(state._tasks))

            last_sync = data.get("last_sync")
            state.last_sync = last_sync if isinstance(last_sync, str) and last_sync else None
            state._filters = TaskFilters.from_dict(data.get("filters"))
        except Exception:
            logger.exception("Failed to import state; falling back to an empty state")
            return cls()

        state._update_stats()
        return state

    @staticmethod
    def _load_tasks(raw_tasks: list[Any]) -> list[Task]:
        out: list[Task] = []
        seen: set[str] = set()
        for raw in raw_tasks:
            try:
                task = Task.deserialize(raw)
            except TaskValidationError as e:
                logger.warning("Skipping invalid stored task: %s", e)
                continue
            if task.id in seen:
                logger.warning("Skipping duplicate stored task id=%s", task.id)
                continue
            seen.add(task.id)
            out.append(task)

        ordered = sorted(out, key=lambda t: t.order)
        if [t.order for t in ordered] != list(range(len(ordered))):
            logger.warning("Stored task order is not contiguous; renumbering %d tasks", len(ordered))
            for index, task in enumerate(ordered):
                task.order = index
        return ordered

    # ---- snapshots (undo hooks) ----

    def create_snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(
            {
                "tasks": [t.serialize() for t in self._tasks],
                "filters": asdict(self._filters),
                "stats": asdict(self._stats),
            }
        )

    def restore_snapshot(self, snapshot: Any) -> bool:
        if not isinstance(snapshot, Mapping):
            return False
        raw_tasks = snapshot.get("tasks")
        if isinstance(raw_tasks, list):
            self._tasks = self._load_tasks(copy.deepcopy(raw_tasks))
            self.next_order_id = len(self._tasks)
        if isinstance(snapshot.get("filters"), Mapping):
            self._filters = TaskFilters.from_dict(snapshot["filters"])
        self._update_stats()
        return True

    # ---- internals ----

    def _find(self, task_id: str) -> Task | None:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def _renumber(self, ordered: list[Task]) -> None:
        for index, task in enumerate(ordered):
            if task.order != index:
                task.update({"order": index})
        self._tasks = ordered
        self.next_order_id = len(ordered)

    def _update_stats(self) -> None:
        self._stats = TaskStats.compute(self._tasks)
