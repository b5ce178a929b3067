"""Structured logging: console output plus a rotating JSON-lines file."""

from __future__ import annotations

import json
import logging
import logging.handlers
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from .config import BaseConfig

ROOT_LOGGER_NAME = "tickerbasket"
LOG_FILENAME = "tickerbasket.log"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 7

# APScheduler reports every job execution at INFO
_QUIET_LOGGERS = ("apscheduler.executors.default", "apscheduler.scheduler")

_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


def _to_json(value: Any) -> Any:
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Anything passed through ``extra=`` is nested under ``"extra"``; observer
    events additionally surface their name as a top-level ``"event"``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        extra = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}
        if "event" in extra:
            payload["event"] = extra["event"]
        if extra:
            payload["extra"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(payload, default=_to_json)


def _console_handler(dev_mode: bool) -> logging.Handler:
    handler = logging.StreamHandler()
    if dev_mode:
        handler.setLevel(logging.INFO)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s", datefmt="%H:%M:%S")
        )
    else:
        handler.setLevel(logging.WARNING)
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    return handler


def _file_handler(log_file: Path) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=log_file,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(config: BaseConfig) -> logging.Logger:
    """Attach console and JSON file handlers to the ``tickerbasket`` logger.

    Calling it again replaces the handlers, so app factories and CLI entry
    points can each call it safely.

    Args:
        config: Application configuration with DATA_DIR and DEV_MODE

    Returns:
        Configured ``tickerbasket`` logger
    """
    log_file = Path(config.DATA_DIR) / "logs" / LOG_FILENAME
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.INFO)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(_console_handler(config.DEV_MODE))
    logger.addHandler(_file_handler(log_file))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(
        "Logging initialized",
        extra={"dev_mode": config.DEV_MODE, "log_file": str(log_file), "data_dir": str(config.DATA_DIR)},
    )
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the ``tickerbasket.<name>`` logger."""

    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
