# src/todolite/storage/service.py

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from ..core.events import (
    STORAGE_CORRUPTED,
    STORAGE_ERROR,
    STORAGE_INTEGRITY_WARNING,
    STORAGE_QUOTA_EXCEEDED,
    STORAGE_SAVED,
    STORAGE_UNAVAILABLE,
    EventBus,
    StorageDiagnostic,
)
from ..core.ports import KeyValueStore, StorageChange, Unsubscribe
from ..core.state import AppState
from .errors import DataCorruptionError, QuotaExceededError, StorageError, StorageUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "todolite_v1"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DATA_VERSION = "1.0.0"

_PROBE_KEY = "__todolite_probe__"
_ENVELOPE_FIELDS = ("version", "timestamp", "state")

ExternalStateHandler = Callable[[AppState], None]


class StorageStatus(StrEnum):
    EMPTY = "empty"
    PRESENT = "present"
    CORRUPTED = "corrupted"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class StorageInfo:
    available: bool
    used: int
    total: int
    percentage: int


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_checksum(payload: Any) -> str:
    """SHA-256 hex over the canonical JSON of payload (envelope fields excluded)."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def format_bytes(n: int) -> str:
    if n <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(n)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


class StorageService:
    """
    Persists AppState as one checksummed JSON envelope under a fixed key.

    Public methods never let store/I/O exceptions escape: failures become a
    False/default return plus a StorageDiagnostic on the event bus.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        storage_key: str = DEFAULT_STORAGE_KEY,
        max_bytes: int = DEFAULT_MAX_BYTES,
        data_version: str = DATA_VERSION,
        events: EventBus | None = None,
    ) -> None:
        self.store = store
        self.storage_key = storage_key
        self.max_bytes = int(max_bytes)
        self.data_version = data_version
        self.events = events if events is not None else EventBus()

        self._external_handlers: list[ExternalStateHandler] = []
        self._store_unsubscribe: Unsubscribe | None = None

    # ---- availability / status ----

    def is_available(self) -> bool:
        try:
            self.store.set_item(_PROBE_KEY, "probe")
            self.store.remove_item(_PROBE_KEY)
            return True
        except Exception as e:
            logger.warning("Storage not available: %s", e)
            return False

    def status(self) -> StorageStatus:
        if not self.is_available():
            return StorageStatus.UNAVAILABLE
        try:
            raw = self.store.get_item(self.storage_key)
        except Exception:
            logger.debug("status: read failed", exc_info=True)
            return StorageStatus.UNAVAILABLE
        if raw is None:
            return StorageStatus.EMPTY
        try:
            envelope = self._parse_envelope(raw)
        except DataCorruptionError:
            return StorageStatus.CORRUPTED
        if compute_checksum(envelope["state"]) != envelope.get("checksum"):
            return StorageStatus.CORRUPTED
        return StorageStatus.PRESENT

    def get_storage_info(self) -> StorageInfo:
        if not self.is_available():
            return StorageInfo(available=False, used=0, total=0, percentage=0)
        try:
            raw = self.store.get_item(self.storage_key)
        except Exception:
            logger.exception("Error getting storage info")
            return StorageInfo(available=False, used=0, total=0, percentage=0)
        used = len(raw.encode("utf-8")) if raw else 0
        total = self.max_bytes
        percentage = round(used / total * 100) if total > 0 else 0
        return StorageInfo(available=True, used=used, total=total, percentage=percentage)

    # ---- save / load ----

    def build_envelope(self, state: AppState) -> dict[str, Any]:
        payload = state.serialize()
        return {
            "version": self.data_version,
            "timestamp": _utc_now_iso(),
            "state": payload,
            "checksum": compute_checksum(payload),
        }

    def save(self, state: AppState) -> bool:
        if not self.is_available():
            self._diagnose(STORAGE_UNAVAILABLE, "Cannot save state: storage not available")
            return False

        try:
            serialized = json.dumps(self.build_envelope(state), ensure_ascii=False)
            size = len(serialized.encode("utf-8"))
            if size > self.max_bytes:
                raise QuotaExceededError(f"Storage limit exceeded: {size} > {self.max_bytes} bytes")

            self.store.set_item(self.storage_key, serialized)
        except QuotaExceededError as e:
            logger.error("Failed to save state: %s", e)
            self._diagnose(STORAGE_QUOTA_EXCEEDED, str(e))
            return False
        except StorageUnavailableError as e:
            logger.error("Failed to save state: %s", e)
            self._diagnose(STORAGE_UNAVAILABLE, str(e))
            return False
        except Exception as e:
            logger.exception("Failed to save state")
            self._diagnose(STORAGE_ERROR, f"Failed to save state: {e}")
            return False

        state.last_sync = _utc_now_iso()
        logger.info("State saved (%s, %d tasks)", format_bytes(size), len(state))
        self.events.emit(STORAGE_SAVED, {"storage_key": self.storage_key, "bytes": size, "last_sync": state.last_sync})
        return True

    def load(self, *, strict: bool = False) -> AppState:
        """
        Read the stored envelope into a fresh AppState.

        - no record: default state (first run, not an error)
        - structural failure: storage:corrupted + default state
          (DataCorruptionError is re-raised when strict=True)
        - checksum mismatch: storage:integrity_warning, load proceeds
        """
        if not self.is_available():
            self._diagnose(STORAGE_UNAVAILABLE, "Cannot load state: storage not available")
            return AppState()

        try:
            raw = self.store.get_item(self.storage_key)
        except Exception as e:
            logger.error("Failed to read state: %s", e)
            self._diagnose(STORAGE_UNAVAILABLE, str(e))
            return AppState()

        if raw is None:
            logger.info("No saved state found, returning default")
            return AppState()

        try:
            envelope = self._parse_envelope(raw)
        except DataCorruptionError as e:
            logger.error("Stored state is corrupted: %s", e)
            self._diagnose(STORAGE_CORRUPTED, str(e))
            if strict:
                raise
            return AppState()

        self._verify_checksum(envelope)
        state = AppState.deserialize(envelope["state"])
        logger.info("State loaded (%s, %d tasks)", format_bytes(len(raw.encode("utf-8"))), len(state))
        return state

    def clear(self) -> bool:
        if not self.is_available():
            return False
        try:
            self.store.remove_item(self.storage_key)
        except Exception:
            logger.exception("Failed to clear storage")
            return False
        logger.info("Storage cleared key=%s", self.storage_key)
        return True

    # ---- backup ----

    def export_snapshot(self) -> str | None:
        if not self.is_available():
            self._diagnose(STORAGE_UNAVAILABLE, "Storage not available for export")
            return None
        try:
            raw = self.store.get_item(self.storage_key)
        except Exception as e:
            logger.error("Failed to export data: %s", e)
            self._diagnose(STORAGE_UNAVAILABLE, str(e))
            return None
        if raw is None:
            logger.info("Nothing to export key=%s", self.storage_key)
        return raw

    def import_snapshot(self, raw: str) -> bool:
        if not self.is_available():
            self._diagnose(STORAGE_UNAVAILABLE, "Storage not available for import")
            return False
        try:
            self._parse_envelope(raw)
            size = len(raw.encode("utf-8"))
            if size > self.max_bytes:
                raise QuotaExceededError(f"Import exceeds storage limit: {size} > {self.max_bytes} bytes")
            self.store.set_item(self.storage_key, raw)
        except DataCorruptionError as e:
            logger.error("Rejected import: %s", e)
            self._diagnose(STORAGE_CORRUPTED, f"Invalid import data: {e}")
            return False
        except QuotaExceededError as e:
            logger.error("Rejected import: %s", e)
            self._diagnose(STORAGE_QUOTA_EXCEEDED, str(e))
            return False
        except StorageError as e:
            logger.error("Failed to import data: %s", e)
            self._diagnose(STORAGE_UNAVAILABLE, str(e))
            return False
        except Exception as e:
            logger.exception("Failed to import data")
            self._diagnose(STORAGE_ERROR, f"Failed to import data: {e}")
            return False
        logger.info("Data imported key=%s", self.storage_key)
        return True

    # ---- cross-context sync ----

    def on_external_change(self, handler: ExternalStateHandler) -> Unsubscribe:
        """
        Call handler(new_state) whenever another context writes our key.

        Writes to other keys and removals are ignored; a payload that cannot
        be parsed is logged and dropped.
        """
        self._external_handlers.append(handler)
        if self._store_unsubscribe is None:
            self._store_unsubscribe = self.store.subscribe(self._handle_store_change)

        def _unsubscribe() -> None:
            if handler in self._external_handlers:
                self._external_handlers.remove(handler)
            if not self._external_handlers and self._store_unsubscribe is not None:
                self._store_unsubscribe()
                self._store_unsubscribe = None

        return _unsubscribe

    def _handle_store_change(self, change: StorageChange) -> None:
        if change.key != self.storage_key or change.new_value is None:
            return
        try:
            envelope = self._parse_envelope(change.new_value)
        except DataCorruptionError as e:
            logger.error("Failed to sync from storage change: %s", e)
            return
        self._verify_checksum(envelope)
        new_state = AppState.deserialize(envelope["state"])
        for handler in list(self._external_handlers):
            try:
                handler(new_state)
            except Exception:
                logger.exception("External change handler failed")

    # ---- internals ----

    @staticmethod
    def _parse_envelope(raw: str) -> dict[str, Any]:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise DataCorruptionError(f"Stored data is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise DataCorruptionError("Stored data is not an object")
        missing = [f for f in _ENVELOPE_FIELDS if not data.get(f)]
        if missing:
            raise DataCorruptionError(f"Stored data is missing: {', '.join(missing)}")
        state = data["state"]
        if not isinstance(state, Mapping) or not isinstance(state.get("tasks"), list):
            raise DataCorruptionError("Stored state has no task list")
        return data

    def _verify_checksum(self, envelope: Mapping[str, Any]) -> bool:
        expected = envelope.get("checksum")
        actual = compute_checksum(envelope["state"])
        if expected == actual:
            return True
        logger.warning("Data checksum mismatch for key=%s, data may be corrupted", self.storage_key)
        self._diagnose(
            STORAGE_INTEGRITY_WARNING,
            "Data checksum mismatch, data may be corrupted",
            expected=expected,
            actual=actual,
        )
        return False

    def _diagnose(self, kind: str, message: str, **detail: Any) -> None:
        diagnostic = StorageDiagnostic(kind=kind, message=message, storage_key=self.storage_key, detail=detail)
        self.events.emit(kind, diagnostic)
        if kind not in (STORAGE_ERROR, STORAGE_INTEGRITY_WARNING):
            self.events.emit(STORAGE_ERROR, diagnostic)
