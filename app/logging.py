"""Logging setup.

``LOG_FORMAT=json`` emits one JSON object per line for log aggregation;
anything else uses a human-readable format. ``LOG_LEVEL`` sets the level.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from app.config import settings

_EXTRA_FIELDS = (
    "document_id",
    "variant",
    "action",
    "actor_id",
    "from_state",
    "to_state",
    "event_type",
)


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        for key in _EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = str(value)
        return json.dumps(entry, ensure_ascii=False)


class ReadableFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    level_name = (level or settings.log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    use_json = (fmt or settings.log_format).strip().lower() == "json"

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if use_json else ReadableFormatter())
    handler.setLevel(log_level)
    root.addHandler(handler)
    root.setLevel(log_level)

    for noisy in ("urllib3", "botocore", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
