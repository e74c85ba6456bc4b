# src/todolite/storage/sqlite_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
import uuid
from pathlib import Path

from ..core.ports import ChangeListener, StorageChange, Unsubscribe
from .errors import QuotaExceededError, StorageError, StorageUnavailableError

logger = logging.getLogger(__name__)


class SqliteKeyValueStore:
    """
    SQLite-backed key-value store.

    Every row carries a revision counter and the id of the instance that
    wrote it, so poll_changes() can tell foreign writes from our own.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "todolite.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._writer_id = uuid.uuid4().hex
        self._listeners: list[ChangeListener] = []
        # key -> last revision this instance has seen
        self._seen: dict[str, int] = {}
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._ensure_schema()
            self._seen = self._read_revisions()
        except StorageError:
            logger.warning("SqliteKeyValueStore unavailable db=%s", self._db_path, exc_info=True)
        except OSError:
            logger.warning("SqliteKeyValueStore cannot create dir for db=%s", self._db_path, exc_info=True)
        logger.info("SqliteKeyValueStore ready db=%s keys=%s", self._db_path, len(self._seen))

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        self._listeners.clear()

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot open {self._db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    @staticmethod
    def _translate(e: sqlite3.Error) -> StorageError:
        msg = str(e).lower()
        if isinstance(e, sqlite3.OperationalError) and ("full" in msg or "too big" in msg):
            return QuotaExceededError(str(e))
        if isinstance(e, sqlite3.DataError) and "too big" in msg:
            return QuotaExceededError(str(e))
        return StorageUnavailableError(str(e))

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_items (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    revision INTEGER NOT NULL DEFAULT 1,
                    writer TEXT NOT NULL DEFAULT '',
                    updated_at REAL NOT NULL
                )
                """
            )
            # Store-wide revision counter: revisions never repeat, even for a key
            # that was deleted and written again.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_clock (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    value INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                "INSERT OR IGNORE INTO kv_clock(id, value) "
                "VALUES (1, (SELECT COALESCE(MAX(revision), 0) FROM kv_items))"
            )
            conn.commit()
        except sqlite3.Error as e:
            raise self._translate(e) from e
        finally:
            conn.close()

    def _read_revisions(self) -> dict[str, int]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT key, revision FROM kv_items").fetchall()
            return {str(r["key"]): int(r["revision"]) for r in rows}
        except sqlite3.Error as e:
            raise self._translate(e) from e
        finally:
            conn.close()

    # ---- public API ----

    def get_item(self, key: str) -> str | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT value FROM kv_items WHERE key = ?", (key,)).fetchone()
            return str(row["value"]) if row else None
        except sqlite3.Error as e:
            raise self._translate(e) from e
        finally:
            conn.close()

    def set_item(self, key: str, value: str) -> None:
        now = time.time()
        conn = self._get_conn()
        try:
            conn.execute("UPDATE kv_clock SET value = value + 1 WHERE id = 1")
            revision = int(conn.execute("SELECT value FROM kv_clock WHERE id = 1").fetchone()["value"])
            conn.execute(
                """
                INSERT INTO kv_items(key, value, revision, writer, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    revision = excluded.revision,
                    writer = excluded.writer,
                    updated_at = excluded.updated_at
                """,
                (key, value, revision, self._writer_id, now),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise self._translate(e) from e
        finally:
            conn.close()

        self._seen[key] = revision
        logger.debug("kv set key=%s bytes=%s", key, len(value.encode("utf-8")))

    def remove_item(self, key: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM kv_items WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as e:
            raise self._translate(e) from e
        finally:
            conn.close()
        self._seen.pop(key, None)

    def subscribe(self, listener: ChangeListener) -> Unsubscribe:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def poll_changes(self) -> list[StorageChange]:
        """
        Detect writes made by other instances since the last poll and notify
        listeners.

        A key whose revision moved and whose last writer is not us is a
        foreign write; a key we had seen that is now gone is a foreign delete.
        """
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT key, value, revision, writer FROM kv_items").fetchall()
        except sqlite3.Error as e:
            raise self._translate(e) from e
        finally:
            conn.close()

        changes: list[StorageChange] = []
        current: dict[str, int] = {}
        for row in rows:
            key = str(row["key"])
            rev = int(row["revision"])
            current[key] = rev
            if self._seen.get(key) == rev:
                continue
            if row["writer"] == self._writer_id:
                continue
            changes.append(StorageChange(key=key, new_value=str(row["value"])))

        for key in self._seen:
            if key not in current:
                changes.append(StorageChange(key=key, new_value=None))

        self._seen = current

        for change in changes:
            for listener in list(self._listeners):
                try:
                    listener(change)
                except Exception:
                    logger.exception("Storage change listener failed key=%s", change.key)

        if changes:
            logger.debug("kv poll: %d foreign change(s) in %s", len(changes), self._db_path)
        return changes
