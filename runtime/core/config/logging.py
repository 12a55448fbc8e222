"""Logging helpers.

The runtime uses Python logging with a JSON formatter so gate decisions and
outcomes can be audited after the fact.
"""

from __future__ import annotations

import logging
from typing import Any

from utils import format_rfc3339, json_dumps, utcnow

_STRUCTURED_EXTRAS = ("gate", "event", "reason", "code", "count", "wait_seconds")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "ts": format_rfc3339(utcnow()),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # Common structured extras (when provided).
        for k in _STRUCTURED_EXTRAS:
            v = getattr(record, k, None)
            if v is not None:
                base[k] = v

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        return json_dumps(base)
