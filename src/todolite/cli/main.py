# src/todolite/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds the TodoApp, then runs the console REPL in the
main thread. Foreign writes to a SQLite store are picked up before each
command.
"""

from __future__ import annotations

import logging

from ..cli.bootstrap import create_app
from ..config import get_settings
from ..connectors.console_connector import attach_notifications, run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _shutdown(app) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        if app.autosave:
            app.save()
    except Exception:
        logger.exception("Final save failed.")

    try:
        app.close()
        store = app.storage.store
        if hasattr(store, "close"):
            store.close()
    except Exception:
        logger.debug("Store close failed.", exc_info=True)


def main() -> None:
    settings = get_settings()

    setup_logging(settings.data_dir, console_level=settings.log_level)

    logger.info("Starting %s...", settings.app_name)

    app = create_app(settings=settings, load=False)
    attach_notifications(app)
    app.load()

    poll = getattr(app.storage.store, "poll_changes", None)

    try:
        run_console_loop(app, poll_changes=poll)
    finally:
        _shutdown(app)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
