"""Structured logging configuration.

Uses standard library logging with a JSON formatter. Each record becomes one
JSON object with ``timestamp``, ``level``, ``logger`` and ``message``, plus:

- ``context``: where in the workflow the record applies (``dialect``,
  ``workflow``, ``task``, ``row``, ``command``), taken from ``extra=``;
- ``extra``: any other ``extra=`` fields;
- ``exception``: the formatted traceback, if any.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

_RESERVED_LOG_RECORD_ATTRS: set[str] = {
    "args",
    "asctime",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}

CONTEXT_FIELDS: tuple[str, ...] = ("dialect", "workflow", "task", "row", "command")


class JsonFormatter(logging.Formatter):
    """A minimal JSON formatter for logging records."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_LOG_RECORD_ATTRS or key.startswith("_"):
                continue
            if key in CONTEXT_FIELDS:
                context[key] = value
            else:
                extra[key] = value
        if context:
            payload["context"] = context
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str, *, debug: bool = False) -> None:
    """Configure root logging with structured JSON output.

    ``debug`` overrides ``level`` and also lets the YAML parser internals log.
    """

    root = logging.getLogger()

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(JsonFormatter())

    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else level.upper())

    # Parser internals are chatty at DEBUG; keep them at INFO unless debugging.
    parser_level = logging.DEBUG if debug else max(root.level, logging.INFO)
    logging.getLogger("flowsync.token_set").setLevel(parser_level)
