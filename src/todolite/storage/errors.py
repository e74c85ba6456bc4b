# src/todolite/storage/errors.py

from __future__ import annotations


class StorageError(Exception):
    """Base class for key-value store failures."""


class StorageUnavailableError(StorageError):
    """The storage mechanism cannot be used at all (disabled, unreadable path, ...)."""


class QuotaExceededError(StorageError):
    """A write would exceed the size bound or the mechanism's own limit."""


class DataCorruptionError(StorageError):
    """The stored envelope failed structural validation."""
