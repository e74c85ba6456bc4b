# src/todolite/connectors/console_connector.py

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.app import TodoApp
from ..core.events import (
    STORAGE_CORRUPTED,
    STORAGE_INTEGRITY_WARNING,
    STORAGE_QUOTA_EXCEEDED,
    STORAGE_UNAVAILABLE,
    SYNC_APPLIED,
    StorageDiagnostic,
)

logger = logging.getLogger(__name__)

_NOTICES = {
    STORAGE_UNAVAILABLE: "Storage unavailable; changes are kept in memory only.",
    STORAGE_QUOTA_EXCEEDED: "Storage is full; delete some old tasks and /save again.",
    STORAGE_CORRUPTED: "Saved data was unreadable; started with an empty list.",
    STORAGE_INTEGRITY_WARNING: "Saved data failed its integrity check; loaded what was readable.",
}


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def attach_notifications(app: TodoApp, emit: Callable[[str], None] = _print_ts) -> None:
    """Surface storage diagnostics and sync events to the user."""

    def _notice(kind: str) -> Callable[[object], None]:
        def _handler(payload: object) -> None:
            text = _NOTICES[kind]
            if isinstance(payload, StorageDiagnostic):
                logger.debug("%s: %s", kind, payload.message)
            emit(f"[STORAGE] {text}")

        return _handler

    for kind in _NOTICES:
        app.on(kind, _notice(kind))

    app.on(SYNC_APPLIED, lambda _payload: emit("[SYNC] Tasks were changed elsewhere; list refreshed."))


def run_console_loop(app: TodoApp, *, poll_changes: Callable[[], object] | None = None) -> None:
    """
    Interactive REPL.

    poll_changes (if given) runs before every command, so foreign writes
    reach the app on this thread and never interleave with a command.
    """
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Type /help for commands, /list to see tasks, /exit to quit.\n")

    while True:
        try:
            user_input = input(">>> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if poll_changes is not None:
            try:
                poll_changes()
            except Exception:
                logger.exception("Polling for external changes failed.")

        if not user_input.startswith("/"):
            # Bare text is a shortcut for /add.
            user_input = f"/add {user_input}"

        try:
            response = command_registry.handle(app, user_input)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is not None:
            print(f"[{_ts_local()}] {response}")

    logger.info("Console connector finished.")
