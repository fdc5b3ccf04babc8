"""
Structured logging configuration.

Every module logs through ``logging.getLogger(__name__)``. At startup the
application calls ``setup_logging()`` which installs a single stdout handler
on the root logger. With LOG_JSON enabled each record is emitted as one JSON
object, and any ``extra={...}`` fields passed at the call site become
top-level keys:

    logger.info("Transaction completed", extra={"transaction_id": 42})

PINs, password hashes and tokens must never be passed to a logger.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Attributes every LogRecord has; anything else came in through extra=
_RESERVED_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "taskName",
    )
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logs."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True) -> None:
    """
    Install the application log handler on the root logger.

    Safe to call more than once: a previously installed handler is replaced
    rather than duplicated.
    """
    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    handler.set_name("account_ledger")

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if existing.get_name() == "account_ledger":
            root_logger.removeHandler(existing)

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.addHandler(handler)
