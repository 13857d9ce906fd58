"""JSON logging for the music subsystem."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Optional

__all__ = ["JsonFormatter", "configure_json_logging"]

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED = set(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        return json.dumps(payload, default=str)


def configure_json_logging(
    level: int = logging.INFO,
    handler: Optional[logging.Handler] = None,
    *,
    logger_name: str = "guildtune.music",
) -> logging.Handler:
    """Send ``logger_name`` records to ``handler`` (stdout by default) as JSON.

    The logger stops propagating so each record is written once. Calling this
    again returns the handler that is already installed.
    """

    target = logging.getLogger(logger_name)
    for existing in target.handlers:
        if isinstance(existing.formatter, JsonFormatter):
            return existing
    handler = handler or logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    target.addHandler(handler)
    target.setLevel(level)
    target.propagate = False
    return handler
