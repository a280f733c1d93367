"""Structured logging utilities for the HNS client."""

from __future__ import annotations

import json
import logging
import os
from logging import Logger
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(log_file: Optional[str] = None, *, level: int = logging.INFO) -> Logger:
    """Configure structured logging for the client.

    Args:
        log_file: Optional path to a JSON lines log file.
        level: Logging level applied to the ``hns_client`` logger.

    Returns:
        The configured package logger.
    """

    console = Console(stderr=True)
    handler = RichHandler(console=console, show_time=False, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger("hns_client")
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(handler)

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredJsonFormatter())
        logger.addHandler(file_handler)

    logger.debug("Structured logging initialised", extra={"event": "logging.configured"})
    return logger


class StructuredJsonFormatter(logging.Formatter):
    """Formatter that emits one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        base: Dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        if hasattr(record, "event"):
            base["event"] = getattr(record, "event")
        if hasattr(record, "data"):
            base["data"] = getattr(record, "data")
        return json.dumps(base, default=str)


def log_event(logger: Logger, level: int, event: str, **data: Any) -> None:
    """Emit ``event`` with structured ``data`` attached to the record."""

    logger.log(level, event, extra={"event": event, "data": data})


__all__ = ["StructuredJsonFormatter", "configure_logging", "log_event"]
