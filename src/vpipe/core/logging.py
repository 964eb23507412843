"""Logging setup: plain or JSON lines on stderr."""

from __future__ import annotations

import json
import logging
import sys
import time
from typing import Any

# Extra fields copied from a LogRecord into the JSON payload when present
_CONTEXT_FIELDS = ("video_id", "job_id", "attempt", "status", "mode", "elapsed_sec")


def _utc_timestamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "timestamp": _utc_timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                base[key] = value

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(base, ensure_ascii=True, default=str)


def setup_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Route all vpipe logging to stderr. stdout is reserved for JSON command output."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stderr)
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    if root.handlers:
        root.handlers = []
    root.addHandler(handler)
