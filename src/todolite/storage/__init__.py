"""
Storage subsystem.

Components:
- service.py: StorageService (envelope, checksum, quota, diagnostics, external changes)
- memory_store.py: in-process key-value store with per-view change broadcast
- sqlite_store.py: SQLite-backed key-value store with revision-based change polling
- watcher.py: asyncio polling loop for stores that need it
- errors.py: storage error taxonomy
"""
