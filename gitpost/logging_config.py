"""
Logging Configuration — Structured logging setup.

Provides consistent logging across all modules with:
- JSON output for production (machine-readable)
- Human-readable output for development
- Configurable log levels

## Environment Variables

- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_FORMAT: json, text (default: text)

## Usage

    from gitpost.logging_config import setup_logging

    setup_logging()  # Call once at startup

Engine code attaches operation context through ``extra``:

    logger.info("Uploaded media", extra={"post_id": pid, "path": path})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# LogRecord attributes promoted into JSON output when present
CONTEXT_FIELDS = ("operation", "post_id", "path")


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Output format:
    {"ts": "...", "level": "...", "logger": "...", "message": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class HumanFormatter(logging.Formatter):
    """
    Human-readable log formatter for development.

    Output format:
    12:34:56 INFO  [module] Message
    """

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        time_str = datetime.now().strftime("%H:%M:%S")

        level = record.levelname
        if sys.stderr.isatty():
            color = self.COLORS.get(level, "")
            level = f"{color}{level:7}{self.RESET}"
        else:
            level = f"{level:7}"

        module = record.name.split(".")[-1][:15]
        msg = record.getMessage()

        post_id = getattr(record, "post_id", None)
        if post_id:
            msg = f"{msg} (post={post_id})"

        line = f"{time_str} {level} [{module:15}] {msg}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
               Defaults to LOG_LEVEL env var or INFO.
        format_type: Output format (json, text).
                     Defaults to LOG_FORMAT env var or text.
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_format = (format_type or os.environ.get("LOG_FORMAT", "text")).lower()

    numeric_level = getattr(logging, log_level, logging.INFO)

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)
    root.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging configured: level={log_level}, format={log_format}"
    )
