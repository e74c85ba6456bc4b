# src/todolite/storage/watcher.py

from __future__ import annotations

"""
External change watcher.

A small polling loop that asks a PollingKeyValueStore for writes made by
other processes; the store itself delivers them to its subscribers.
This is the non-browser stand-in for the cross-tab "storage" event.
"""

import asyncio
import logging

from ..core.ports import PollingKeyValueStore

logger = logging.getLogger(__name__)


async def run_change_watcher(
        store: PollingKeyValueStore,
        *,
        interval_seconds: float = 1.0,
) -> None:
    """
    Every interval_seconds call store.poll_changes().

    Poll failures are logged and retried on the next tick.
    To stop the watcher, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))
    logger.info("Change watcher started interval=%.2fs", sleep_s)

    while True:
        try:
            store.poll_changes()
        except Exception:
            logger.exception("poll_changes failed")

        await asyncio.sleep(sleep_s)
