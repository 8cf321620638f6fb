"""Logging configuration for releasegate.

Provides structured logging with:
- JSON output for log aggregation
- Contextual information (deployment_id, gate, alert type)
- Log rotation
- Console and file outputs

Usage:
    from releasegate.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Deployment validated", extra={
        "deployment_id": "deploy-2026-01-01T00-00-00-abc123",
        "approved": True,
    })
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    @staticmethod
    def _utc_isoformat() -> str:
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self._utc_isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Fields passed via extra={...}
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        # Fields injected by LogContext
        if isinstance(getattr(record, "context", None), dict):
            log_data.update(record.context)

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


def setup_logging(
    name: str = "releasegate",
    level: int = logging.INFO,
    log_dir: Path | None = None,
    enable_json: bool = True,
    enable_console: bool = True,
    enable_rotation: bool = True,
) -> logging.Logger:
    """Set up logging for the releasegate logger tree.

    Args:
        name: Logger name
        level: Logging level
        log_dir: Directory for log files (default: ~/.releasegate/logs/)
        enable_json: Also write a JSON-lines log file
        enable_console: Log to stderr
        enable_rotation: Write a rotating plain-text log file

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()

    if log_dir is None:
        log_dir = Path("~/.releasegate/logs").expanduser()
    if enable_json or enable_rotation:
        log_dir.mkdir(parents=True, exist_ok=True)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s - %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        logger.addHandler(console_handler)

    if enable_rotation:
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{name}.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    if enable_json:
        json_handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{name}.json.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
        )
        json_handler.setLevel(logging.DEBUG)
        json_handler.setFormatter(JSONFormatter())
        logger.addHandler(json_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger namespaced under ``releasegate``."""
    if name == "releasegate" or name.startswith("releasegate."):
        return logging.getLogger(name)
    return logging.getLogger(f"releasegate.{name}")


class LogContext:
    """Context manager for adding contextual information to logs.

    Usage:
        with LogContext(deployment_id="deploy-123"):
            logger.info("Running gates")
            # All records in this block carry deployment_id
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs
        self.old_factory = None

    def __enter__(self) -> LogContext:
        old_factory = logging.getLogRecordFactory()
        context = self.context

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            record.context = context
            return record

        logging.setLogRecordFactory(record_factory)
        self.old_factory = old_factory
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        logging.setLogRecordFactory(self.old_factory)


__all__ = [
    "setup_logging",
    "get_logger",
    "LogContext",
    "JSONFormatter",
]
