"""Structured logging configuration."""

import logging
import sys

from app.core.config import settings

# Context attached through ``extra=`` by the rule store, scan and notifier
EXTRA_FIELDS = ("action", "rule_key", "record_id", "entry_id")

# Chatty third-party loggers capped at WARNING
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


class StructuredFormatter(logging.Formatter):
    """key=value log lines with risk engine context fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return " ".join(f"{k}={v}" for k, v in log_data.items())


def setup_logging() -> None:
    """Configure root logging once per process.

    Development gets a plain human-readable format; every other
    environment gets ``StructuredFormatter`` output on stdout.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    if settings.is_dev:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    else:
        console_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)


class AuditLogger:
    """Mirrors rule change log entries to the ``audit`` logger."""

    def __init__(self) -> None:
        self.logger = get_logger("audit")

    def log(
        self,
        action: str,
        rule_key: str,
        note: str,
        entry_id: int | None = None,
    ) -> None:
        self.logger.info(
            f"AUDIT: rule={rule_key} {note}",
            extra={"action": action, "rule_key": rule_key, "entry_id": entry_id},
        )


audit_logger = AuditLogger()
