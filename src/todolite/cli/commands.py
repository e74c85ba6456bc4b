# src/todolite/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from ..core.app import TodoApp
from ..storage.service import format_bytes
from ..tasks.task_models import Priority, Task

CommandHandler = Callable[[TodoApp, list[str]], str]

logger = logging.getLogger(__name__)

_PRIORITY_MARKS = {p.value: p.value[0].upper() for p in Priority}


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, app: TodoApp, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        return handler(app, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def format_task(position: int, task: Task) -> str:
    box = "[x]" if task.completed else "[ ]"
    mark = _PRIORITY_MARKS.get(task.priority.value, "?")
    return f"{position:>3}. {box} ({mark}) {task.text}  #{task.category}  <{task.id[:8]}>"


def resolve_task(app: TodoApp, ref: str) -> Task | None:
    """
    Find a task by its 1-based position in the current (filtered) list,
    or by a unique id prefix.
    """
    if ref.isdigit():
        visible = app.filtered_tasks()
        index = int(ref) - 1
        return visible[index] if 0 <= index < len(visible) else None

    matches = [t for t in app.state.tasks if t.id.startswith(ref)]
    return matches[0] if len(matches) == 1 else None


def _validation_reply(app: TodoApp, fallback: str) -> str:
    result = app.last_validation
    if result is None or result.is_valid:
        return fallback
    return "Rejected: " + "; ".join(result.errors)


def _warnings_suffix(app: TodoApp) -> str:
    result = app.last_validation
    if result is None or not result.warnings:
        return ""
    return " (warning: " + "; ".join(result.warnings) + ")"


def cmd_help(app: TodoApp, args: list[str]) -> str:
    return registry.build_help()


def cmd_add(app: TodoApp, args: list[str]) -> str:
    """
    /add Buy milk                -> medium priority, category "general"
    /add Buy milk !high #home    -> tokens starting with ! and # set priority/category
    """
    priority: str | None = None
    category: str | None = None
    words: list[str] = []
    for token in args:
        if token.startswith("!") and len(token) > 1:
            priority = token[1:].lower()
        elif token.startswith("#") and len(token) > 1:
            category = token[1:]
        else:
            words.append(token)

    task_id = app.add_task(" ".join(words), priority=priority, category=category)
    if task_id is None:
        return _validation_reply(app, "Task was not added.")
    return f"Added <{task_id[:8]}>.{_warnings_suffix(app)}"


def cmd_list(app: TodoApp, args: list[str]) -> str:
    tasks = app.filtered_tasks()
    if not tasks:
        return "No tasks match the current filters." if len(app.state) else "No tasks yet. Use /add <text>."
    lines = [format_task(i, t) for i, t in enumerate(tasks, start=1)]
    return "\n".join(lines)


def cmd_done(app: TodoApp, args: list[str]) -> str:
    if not args:
        return "Usage: /done <n|id>"
    task = resolve_task(app, args[0])
    if task is None or not app.toggle_task(task.id):
        return f"No such task: {args[0]}"
    return f"{'Reopened' if task.completed else 'Completed'}: {task.text}"


def cmd_edit(app: TodoApp, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /edit <n|id> <new text>"
    task = resolve_task(app, args[0])
    if task is None:
        return f"No such task: {args[0]}"
    if not app.update_task(task.id, text=" ".join(args[1:])):
        return _validation_reply(app, f"No such task: {args[0]}")
    return f"Updated <{task.id[:8]}>.{_warnings_suffix(app)}"


def cmd_priority(app: TodoApp, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /pri <n|id> <low|medium|high>"
    task = resolve_task(app, args[0])
    if task is None:
        return f"No such task: {args[0]}"
    if not app.update_task(task.id, priority=args[1].lower()):
        return _validation_reply(app, f"No such task: {args[0]}")
    return f"Priority of <{task.id[:8]}> is now {args[1].lower()}."


def cmd_category(app: TodoApp, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /cat <n|id> <category>"
    task = resolve_task(app, args[0])
    if task is None:
        return f"No such task: {args[0]}"
    if not app.update_task(task.id, category=" ".join(args[1:])):
        return _validation_reply(app, f"No such task: {args[0]}")
    return f"Category of <{task.id[:8]}> updated."


def cmd_remove(app: TodoApp, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <n|id>"
    task = resolve_task(app, args[0])
    if task is None or not app.delete_task(task.id):
        return f"No such task: {args[0]}"
    return f"Deleted: {task.text}"


def cmd_move(app: TodoApp, args: list[str]) -> str:
    if len(args) != 2 or not args[1].isdigit() or int(args[1]) < 1:
        return "Usage: /mv <n|id> <position>"
    task = resolve_task(app, args[0])
    if task is None or not app.reorder_task(task.id, int(args[1]) - 1):
        return f"No such task: {args[0]}"
    return f"Moved <{task.id[:8]}> to position {args[1]}."


def cmd_filter(app: TodoApp, args: list[str]) -> str:
    """
    /filter                          -> show filters
    /filter reset                    -> clear all filters
    /filter status=pending search=milk
    """
    if args and args[0].lower() == "reset":
        app.set_filters(category="all", priority="all", status="all", search="")
    elif args:
        changes: dict[str, str] = {}
        for token in args:
            key, sep, value = token.partition("=")
            if not sep:
                return "Usage: /filter [reset] [status=..] [priority=..] [category=..] [search=..]"
            changes[key.lower()] = value
        app.set_filters(**changes)

    f = app.filters
    return f"Filters: status={f.status} priority={f.priority} category={f.category} search={f.search!r}"


def cmd_stats(app: TodoApp, args: list[str]) -> str:
    s = app.stats
    bar_width = 20
    filled = round(bar_width * s.completion_rate / 100)
    bar = "#" * filled + "-" * (bar_width - filled)
    return (
        f"[{bar}] {s.completion_rate}%\n"
        f"  total={s.total} completed={s.completed} pending={s.pending}"
    )


def cmd_save(app: TodoApp, args: list[str]) -> str:
    return "Saved." if app.save() else "Save failed (see log)."


def cmd_reload(app: TodoApp, args: list[str]) -> str:
    app.load()
    return f"Reloaded {len(app.state)} task(s)."


def cmd_export(app: TodoApp, args: list[str]) -> str:
    if not args:
        return "Usage: /export <path>"
    raw = app.export_data()
    if raw is None:
        return "Nothing to export."
    path = Path(args[0]).expanduser()
    try:
        path.write_text(raw, "utf-8")
    except OSError as e:
        logger.error("Export to %s failed: %s", path, e)
        return f"Export failed: {e}"
    return f"Exported {format_bytes(len(raw.encode('utf-8')))} to {path}."


def cmd_import(app: TodoApp, args: list[str]) -> str:
    if not args:
        return "Usage: /import <path>"
    path = Path(args[0]).expanduser()
    try:
        raw = path.read_text("utf-8")
    except OSError as e:
        logger.error("Import from %s failed: %s", path, e)
        return f"Import failed: {e}"
    if not app.import_data(raw):
        return "Import rejected (invalid or too large backup)."
    return f"Imported {len(app.state)} task(s) from {path}."


def cmd_clear(app: TodoApp, args: list[str]) -> str:
    if not args or args[0].lower() != "yes":
        return "This deletes every task. Confirm with: /clear yes"
    return "All tasks cleared." if app.clear_all() else "Nothing to clear."


def cmd_info(app: TodoApp, args: list[str]) -> str:
    info = app.storage_info()
    if not info.available:
        return "Storage: unavailable (changes live in memory only)."
    return (
        f"Storage: {app.storage.status().value}, key={app.storage.storage_key}\n"
        f"  used {format_bytes(info.used)} of {format_bytes(info.total)} ({info.percentage}%)\n"
        f"  last sync: {app.state.last_sync or 'never'}"
    )


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("add", cmd_add, help_text="Add a task: /add <text> [!low|!medium|!high] [#category].", aliases=["a"])
registry.register("list", cmd_list, help_text="List tasks matching the current filters.", aliases=["ls", "l"])
registry.register("done", cmd_done, help_text="Toggle completion: /done <n|id>.", aliases=["x"])
registry.register("edit", cmd_edit, help_text="Change task text: /edit <n|id> <text>.")
registry.register("pri", cmd_priority, help_text="Set priority: /pri <n|id> <low|medium|high>.")
registry.register("cat", cmd_category, help_text="Set category: /cat <n|id> <category>.")
registry.register("rm", cmd_remove, help_text="Delete a task: /rm <n|id>.", aliases=["del"])
registry.register("mv", cmd_move, help_text="Move a task: /mv <n|id> <position>.")
registry.register("filter", cmd_filter, help_text="Show/set filters: /filter [reset] [key=value ...].", aliases=["f"])
registry.register("stats", cmd_stats, help_text="Show completion statistics.")
registry.register("save", cmd_save, help_text="Save now.")
registry.register("reload", cmd_reload, help_text="Reload from storage (drops unsaved changes).")
registry.register("export", cmd_export, help_text="Write a backup: /export <path>.")
registry.register("import", cmd_import, help_text="Restore a backup: /import <path>.")
registry.register("clear", cmd_clear, help_text="Delete all tasks: /clear yes.")
registry.register("info", cmd_info, help_text="Storage usage and sync status.")
