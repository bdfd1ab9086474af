"""
Logging setup for Convex Sync.

Provides structured logging with:
- Rich colored console output (on stderr, stdout carries the update stream)
- JSON log lines in the connector log format
- File logging with rotation
"""

from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler


# Global console for rich output
console = Console(stderr=True)

# Package logger
logger = logging.getLogger("convex_sync")

MESSAGE_ORIGIN = "sdk_connector"


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    format_style: str = "rich",
    max_file_size_mb: int = 10,
    backup_count: int = 3,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file
        format_style: "rich", "json", or "simple"
        max_file_size_mb: Max log file size before rotation
        backup_count: Number of backup files to keep
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Clear existing handlers
    logger.handlers.clear()
    logger.setLevel(log_level)

    if format_style == "rich":
        handler: logging.Handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    elif format_style == "json":
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    handler.setLevel(log_level)
    logger.addHandler(handler)

    if log_file:
        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)


class JsonFormatter(logging.Formatter):
    """One JSON object per line: level, message and message origin."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "level": "SEVERE" if record.levelno >= logging.ERROR else record.levelname,
            "message": record.getMessage(),
            "message-origin": MESSAGE_ORIGIN,
            "logger": record.name,
            "timestamp": self.formatTime(record),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)
