"""Logging setup for pay-recon.

Reconciliation logs are only useful when they say which provider and which
correlation id they concern, so besides :func:`setup_logging` this module
offers :func:`bind`, a logger adapter that stamps those fields on every
record, and a JSON formatter that emits them as top-level keys.
"""

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import datetime, timezone
from typing import Any, TextIO

# Record attributes promoted to top-level keys in JSON output
CONTEXT_FIELDS = ("provider", "correlation_id", "transaction_id", "event_type", "outcome")

# Client libraries that log every broker or connection event at INFO
NOISY_LOGGERS = ("confluent_kafka", "psycopg", "faker")

STANDARD_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(
    level: str = "INFO",
    format_type: str = "standard",
    stream: TextIO | None = None,
) -> None:
    """Route all pay-recon logging to a single stream handler.

    Parameters
    ----------
    level : str
        Log level name; unknown names fall back to INFO.
    format_type : str
        ``"standard"`` for one human-readable line per record, ``"json"``
        for one JSON object per record.
    stream : TextIO | None
        Destination, stdout by default.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=STANDARD_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(log_level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)

    logging.getLogger("pay_recon").setLevel(log_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with reconciliation context as keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = str(value)

        # Free-form fields passed as extra={"extra": {...}}
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ContextAdapter(logging.LoggerAdapter):
    """Logger adapter that merges bound context into each record's extras.

    Extras given at the call site win over bound values.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def bind(logger: logging.Logger | str, **context: Any) -> ContextAdapter:
    """Return ``logger`` with ``context`` attached to every record it emits.

    ``None`` values are dropped so they never shadow a later binding.
    """
    if isinstance(logger, str):
        logger = logging.getLogger(logger)
    return ContextAdapter(logger, {k: v for k, v in context.items() if v is not None})
