"""Centralized logging utilities for Decision Coach."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import CONFIG

_LOGGER: Optional[logging.Logger] = None

# Structured fields passed through ``extra=`` that get appended to the message.
_EXTRA_FIELDS = (
    ("session_id", "session"),
    ("message_id", "message"),
    ("tool", "tool"),
    ("model", "model"),
    ("chars", "chars"),
    ("chunk_count", "chunks"),
    ("hits", "hits"),
    ("fallback", "fallback"),
    ("status_code", "status"),
    ("elapsed_ms", "elapsed_ms"),
)


class ExtraFormatter(logging.Formatter):
    """Formatter that appends known ``extra`` fields as ``[key=value, ...]``."""

    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for attr, label in _EXTRA_FIELDS:
            if hasattr(record, attr):
                extras.append(f"{label}={getattr(record, attr)}")
        if extras:
            # Copy so a second handler formatting the same record does not append twice.
            record = logging.makeLogRecord(record.__dict__)
            record.msg = f"{record.msg} [{', '.join(extras)}]"
        return super().format(record)


def setup_logging(level: str | int = "INFO") -> logging.Logger:
    """Configure application-wide logging and return the package logger."""

    global _LOGGER
    if _LOGGER is not None:
        return _LOGGER

    log_dir = CONFIG.paths.state_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "decision_coach.log"

    logger = logging.getLogger("decision_coach")
    logger.setLevel(level if isinstance(level, int) else getattr(logging, str(level).upper(), logging.INFO))

    formatter = ExtraFormatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    file_handler = RotatingFileHandler(log_path, maxBytes=5 * 1024 * 1024, backupCount=5)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if os.environ.get("COACH_LOG_TO_STDOUT", "0") == "1":
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    logger.debug("Logging initialized at %s", log_path)
    _LOGGER = logger
    return logger


__all__ = ["ExtraFormatter", "setup_logging"]
