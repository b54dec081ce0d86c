"""Process-wide logging setup on the stdlib ``logging`` module.

Modules call :func:`get_logger` at import time; the first call installs
the handlers. Entry points may call :func:`configure` earlier to pick the
level and whether a log file is written.
"""
from __future__ import annotations

import logging
import os
import sys
import threading
from datetime import datetime
from pathlib import Path

LOG_DIR = Path(os.environ.get("JOBFEED_LOG_DIR") or Path(__file__).resolve().parent.parent / "logs")
LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# third-party loggers that are chatty at INFO
QUIET_LOGGERS: tuple[str, ...] = ("urllib3", "apscheduler", "feedparser")

_lock = threading.Lock()
_configured = False


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


def _formatted(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def configure(level: str | None = None, log_file: bool | None = None) -> None:
    """Install console (and optionally daily file) handlers on the root logger.

    Only the first call has any effect. ``level`` falls back to $LOG_LEVEL,
    ``log_file`` to $JOBFEED_LOG_FILE (on unless set to 0/false/no).
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

        level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
        numeric = getattr(logging, level_name, logging.INFO)
        root = logging.getLogger()
        root.setLevel(numeric)
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(max(numeric, logging.WARNING))

        # pytest and embedding applications bring their own handlers
        if root.handlers:
            return
        root.addHandler(_formatted(logging.StreamHandler(sys.stdout), numeric))

        if not (log_file if log_file is not None else _env_flag("JOBFEED_LOG_FILE", True)):
            return
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            path = LOG_DIR / f"jobfeed_{datetime.now():%Y-%m-%d}.log"
            root.addHandler(_formatted(logging.FileHandler(path, encoding="utf-8"), logging.DEBUG))
        except OSError as exc:
            root.warning("File logging disabled: %s", exc)


def get_logger(name: str) -> logging.Logger:
    """Named logger; configures the root handlers with defaults on first use."""
    if not _configured:
        configure()
    return logging.getLogger(name)
