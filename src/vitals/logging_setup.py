"""Structured local logging for vitals."""

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from vitals.config import config_root

_LOGGER_NAME = "vitals"

# Structured fields callers may attach with ``extra=``.
EXTRA_FIELDS = ("event", "source", "status")


def log_path() -> Path:
    """Default log file under the config root."""
    return config_root() / "logs" / "vitals.log"


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with any ``EXTRA_FIELDS`` copied over."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts_utc": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                payload[field] = getattr(record, field)
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(
    path: Path | None = None,
    console: bool = False,
    level: int = logging.INFO,
    keep_files: int = 7,
) -> logging.Logger:
    """
    Send ``vitals.*`` records to a rotating JSON-lines file.

    The terminal panel owns the screen, so console output is opt-in and
    only used by the headless agent. Calling this twice is a no-op.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(level)
    path = path or log_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(path),
        when="midnight",
        backupCount=max(2, keep_files),
        encoding="utf-8",
    )
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    if console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        logger.addHandler(stream_handler)

    logger.debug("logging configured at %s", path, extra={"event": "logging_configured"})
    return logger
