"""Logging setup for welfare-loans.

Two layouts are available: a pipe-separated line for terminals and one JSON
object per record for log shippers. Records from the reconciliation worker
pool carry their thread name so concurrent loans can be told apart.
"""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, TextIO

STANDARD_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers held at WARNING whatever the configured level
QUIET_LOGGERS = ("confluent_kafka", "psycopg", "faker")


def setup_logging(
    level: str = "INFO",
    format_type: str = "standard",
    stream: TextIO | None = None,
) -> None:
    """Replace the root handlers with a single stream handler.

    Parameters
    ----------
    level : str
        Log level name; unknown names fall back to INFO.
    format_type : str
        "standard" or "json".
    stream : TextIO | None
        Where records are written (default: stdout). The CLI passes stderr
        so that stdout only carries its JSON result.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter: logging.Formatter
    if format_type == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=STANDARD_FORMAT, datefmt=DATE_FORMAT)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)

    logging.getLogger("welfare_loans").setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class JsonFormatter(logging.Formatter):
    """Render a record as a single-line JSON object.

    Fields passed as ``extra={"extra": {"loan_id": ...}}`` are merged into
    the top level of the object.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.threadName and record.threadName != threading.main_thread().name:
            payload["thread"] = record.threadName
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "extra"):
            payload.update(record.extra)

        return json.dumps(payload, default=str)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for ``name`` (usually ``__name__``)."""
    return logging.getLogger(name)
