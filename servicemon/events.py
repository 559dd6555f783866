"""Structured event logging on top of the standard logging module."""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

LEVELS: Dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}

FIELDS_ATTR = "event_fields"


class JsonFormatter(logging.Formatter):
    """One JSON object per record; structured fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": "fatal" if record.levelno >= logging.CRITICAL else record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        fields = getattr(record, FIELDS_ATTR, None)
        if fields:
            for key, value in fields.items():
                entry.setdefault(key, value)
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, separators=(",", ":"))


class FieldsTextFormatter(logging.Formatter):
    """Plain-text formatter that appends structured fields as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = getattr(record, FIELDS_ATTR, None)
        if not fields:
            return base
        rendered = " ".join(f"{key}={value}" for key, value in fields.items())
        return f"{base} {rendered}"


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    handler = logging.StreamHandler(stream=sys.stdout)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            FieldsTextFormatter("%(asctime)s %(levelname)s %(name)s:%(lineno)d | %(message)s")
        )
    logging.basicConfig(level=level, handlers=[handler], force=True)


class EventLogger:
    """Emits one structured event per call.

    Writes go through the handler lock of the underlying logger, so events
    from concurrent requests never interleave.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("servicemon")

    def emit(self, level: str, message: str, fields: Optional[Mapping[str, Any]] = None) -> None:
        try:
            levelno = LEVELS[level.lower()]
        except KeyError:
            raise ValueError(f"Unknown event level: {level}") from None
        self.logger.log(levelno, message, extra={FIELDS_ATTR: dict(fields or {})})


__all__ = ["EventLogger", "FieldsTextFormatter", "JsonFormatter", "configure_logging"]
