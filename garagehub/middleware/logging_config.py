"""
Logging configuration.

Plain text by default; with JSON_LOGGING=true every log line is a JSON
object carrying timestamp, level, logger, message, request_id and actor,
plus the access-control fields (kind, action, reason) when a log call
attaches them via `extra`.
"""

import json
import logging
from datetime import datetime, timezone

from garagehub.middleware.request_context import get_actor, get_request_id

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Optional attributes copied from LogRecord extras into the JSON line.
_EXTRA_FIELDS = ("duration_ms", "kind", "action", "reason")


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": get_request_id(),
            "actor": get_actor() or None,
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def configure_logging(log_level: str = "INFO", json_logging: bool = False) -> None:
    """Install a single root handler, JSON or text."""
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if json_logging else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
