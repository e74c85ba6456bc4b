# src/todolite/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Nothing required at import time; every key has a default.
- Paths default to a local, gitignored data dir.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TODOLITE"

STORAGE_BACKENDS = ("sqlite", "memory")

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Storage ----
    data_dir: Path
    storage_backend: str
    db_path: Path
    storage_key: str
    max_storage_bytes: int

    # ---- Behaviour ----
    autosave: bool
    watch_interval_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "todolite").strip() or "todolite"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/todolite"))

        storage_backend = _env(_k("STORAGE_BACKEND"), "sqlite").strip().lower()
        if storage_backend not in STORAGE_BACKENDS:
            storage_backend = "sqlite"

        db_path = _env_path(_k("DB_PATH"), data_dir / "todolite.sqlite3")
        storage_key = _env(_k("STORAGE_KEY"), "todolite_v1").strip() or "todolite_v1"
        max_storage_bytes = max(1, _env_int(_k("MAX_STORAGE_BYTES"), 5 * 1024 * 1024))

        autosave = _env_bool(_k("AUTOSAVE"), True)
        watch_interval_seconds = max(0.05, _env_float(_k("WATCH_INTERVAL_SECONDS"), 1.0))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            storage_backend=storage_backend,
            db_path=db_path,
            storage_key=storage_key,
            max_storage_bytes=max_storage_bytes,
            autosave=autosave,
            watch_interval_seconds=watch_interval_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
