"""Structured logging setup."""

import json
import logging
import sys

BASE_LOGGER = "xfactor_api"

# third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "urllib3", "sqlalchemy.engine")


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra={"audit": {...}}`` is emitted as-is."""

    def format(self, record):
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        audit = getattr(record, "audit", None)
        if audit:
            log_data["audit"] = audit
        if record.exc_info and record.exc_info[0]:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", json_format: bool = False) -> logging.Logger:
    """
    Configure the application logger.

    Args:
        level: log level (DEBUG, INFO, WARNING, ERROR)
        json_format: emit one JSON object per line (production)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger(BASE_LOGGER)
    logger.setLevel(numeric_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    # avoid duplicate handlers on reload
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
    logger.addHandler(handler)
    return logger
