"""Logging configuration: JSON lines on disk, plain text on stderr."""

from __future__ import annotations

import json
import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from .config.paths import log_dir
from .config.settings import LoggingSettings
from .trace import get_trace_id

ROOT_LOGGER = "voice_chat"
_LOG_FILE = "voice_chat.jsonl"


class JsonFormatter(logging.Formatter):
    """Serialize records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "category": record.name,
            "message": record.getMessage(),
            "trace_id": getattr(record, "trace_id", None) or get_trace_id(),
        }
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record, ensure_ascii=False)


class SizeAndTimeRotatingFileHandler(TimedRotatingFileHandler):
    """Rotate on midnight or when the file grows past ``max_bytes``."""

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 0,
        backup_count: int = 0,
        when: str = "midnight",
        encoding: str | None = "utf-8",
        delay: bool = True,
    ) -> None:
        self.maxBytes = max_bytes
        super().__init__(
            str(filename),
            when=when,
            backupCount=backup_count,
            encoding=encoding,
            delay=delay,
        )

    def shouldRollover(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if self.maxBytes > 0:
            if self.stream is None:  # pragma: no cover
                self.stream = self._open()
            msg = f"{self.format(record)}\n"
            if (self.stream.tell() + len(msg.encode(self.encoding or "utf-8"))) >= self.maxBytes:
                return True
        return super().shouldRollover(record)


def configure_logging(settings: LoggingSettings, *, console: bool = True) -> logging.Logger:
    """Install handlers on the package logger (idempotent)."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(settings.level.upper())
    if logger.handlers:
        return logger

    directory = Path(settings.log_dir) if settings.log_dir else log_dir()
    directory.mkdir(parents=True, exist_ok=True)
    file_handler = SizeAndTimeRotatingFileHandler(
        directory / _LOG_FILE,
        max_bytes=settings.rotate_mb * 1024 * 1024,
        backup_count=settings.retention_days,
    )
    file_handler.setFormatter(JsonFormatter())
    logger.addHandler(file_handler)

    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setLevel(logging.WARNING)
        stream.setFormatter(logging.Formatter("[%(name)s] %(levelname)s %(message)s"))
        logger.addHandler(stream)
    logger.propagate = False
    return logger
