from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

# Libraries that log every request at INFO/DEBUG.
NOISY_LOGGERS = ("urllib3", "httpx")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def split_event(message: str) -> Tuple[Optional[str], Dict[str, str]]:
    """Split an ``event key=value ...`` line into the event name and its fields.

    Words without ``=`` extend the previous value, so ``error=read timed out``
    keeps its spaces. Lines that do not start with a bare event name yield
    ``(None, {})``.
    """
    words = message.split()
    if not words or "=" in words[0]:
        return None, {}
    fields: Dict[str, str] = {}
    last = None
    for word in words[1:]:
        key, sep, value = word.partition("=")
        if sep and key:
            fields[key] = value
            last = key
        elif last is not None:
            fields[last] += " " + word
        else:
            return None, {}
    return words[0], fields


class JsonFormatter(logging.Formatter):
    """One JSON object per line; engine events also carry ``event`` and ``fields``."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "msg": message,
        }
        if record.name.startswith("strategy_engine"):
            event, fields = split_event(message)
            if event is not None:
                payload["event"] = event
                payload["fields"] = fields
        if record.threadName and record.threadName != "MainThread":
            payload["thread"] = record.threadName
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str)


def setup_logging(level: str = "INFO", json_logs: bool = False) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if json_logs else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
