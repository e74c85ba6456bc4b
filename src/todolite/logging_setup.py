# src/todolite/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "todolite.log"

# Console floor per component. Autosave logs every mutation at INFO and the
# stores log every write at DEBUG; the REPL already prints storage notices.
_CONSOLE_FLOORS: dict[str, int] = {
    "todolite.storage.service": logging.WARNING,
    "todolite.storage.sqlite_store": logging.WARNING,
    "todolite.storage.memory_store": logging.WARNING,
    "todolite.storage.watcher": logging.WARNING,
    "todolite.core.state": logging.WARNING,
}


def resolve_level(level: int | str, default: int = logging.INFO) -> int:
    """Accept 20, "20", "info" or "INFO"; anything unknown maps to default."""
    if isinstance(level, int):
        return level
    text = str(level).strip()
    if text.isdigit():
        return int(text)
    value = logging.getLevelName(text.upper())
    return value if isinstance(value, int) else default


class _ConsoleFilter(logging.Filter):
    """
    Keep the interactive console readable.

    todolite loggers pass unless their component has a floor in
    _CONSOLE_FLOORS; everything else (py.warnings included) needs ERROR+.
    The file handler is not filtered.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name != "todolite" and not name.startswith("todolite."):
            return record.levelno >= logging.ERROR

        for prefix, floor in _CONSOLE_FLOORS.items():
            if name == prefix or name.startswith(prefix + "."):
                return record.levelno >= floor
        return True


def setup_logging(
    log_dir: str | Path,
    *,
    console_level: int | str = logging.INFO,
    file_level: int | str = logging.DEBUG,
) -> Path:
    """
    Install a filtered stderr handler and a full log file under log_dir.

    Call once at startup; existing root handlers are replaced.
    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(resolve_level(console_level))
    console.setFormatter(fmt)
    console.addFilter(_ConsoleFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(resolve_level(file_level, default=logging.DEBUG))
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    return log_file
