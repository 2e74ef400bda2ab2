"""
Structured logging for ledger and loan operations

Service writes are logged as one JSON line each, carrying the action name
and the resource it touched (e.g. "loan:<id>").
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional

from .config import get_config

# Record attributes copied into the JSON entry when present
ACTION_FIELDS = ("correlation_id", "action", "resource", "extra")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record; action fields are omitted when unset"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in ACTION_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: Optional[str] = None, logger_name: str = "finledger",
                  log_format: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach a single handler to the package logger.

    Arguments left as None are taken from FinLedgerConfig (log_level,
    log_format, log_file). Logs go to stderr when no file is configured.
    """
    settings = get_config()
    level = level or settings.log_level
    log_format = log_format or settings.log_format
    log_file = log_file or settings.log_file

    logger = logging.getLogger(logger_name)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    if log_format.lower() == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        handler.setFormatter(JSONFormatter())

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False
    return logger


def get_logger(name: str = "finledger") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               action: Optional[str] = None, resource: Optional[str] = None,
               correlation_id: Optional[str] = None, extra: Optional[dict] = None):
    """Log a state change as one structured record"""
    fields = {"action": action, "resource": resource,
              "correlation_id": correlation_id, "extra": extra}
    logger.log(
        getattr(logging, level.upper()), message,
        extra={k: v for k, v in fields.items() if v}
    )
