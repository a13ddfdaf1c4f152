from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import MutableMapping, Optional

CONTEXT_FIELDS = ("run_id", "path", "status")


class JsonFormatter(logging.Formatter):
    """Structured JSON formatter adding standard metadata."""

    def format(self, record: logging.LogRecord) -> str:
        base: MutableMapping[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                base[field] = str(value)

        if record.exc_info:
            base["exception"] = self.formatException(record.exc_info)

        return json.dumps(base, ensure_ascii=False)


def configure_logging(
    level: str = "WARNING",
    json_logs: bool = False,
    stream: Optional[object] = None,
) -> logging.Handler:
    """Configure root logging with an optional JSON formatter.

    ``stream`` defaults to stderr so scan output on stdout stays parseable.
    """

    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter() if json_logs else logging.Formatter("%(asctime)s %(name)s [%(levelname)s] %(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())
    root.addHandler(handler)

    logging.captureWarnings(True)
    return handler


def extra_logger(name: str, **extra: object) -> logging.LoggerAdapter:
    """Return a logger adapter that injects contextual fields (e.g. run_id)."""

    return logging.LoggerAdapter(logging.getLogger(name), extra)
