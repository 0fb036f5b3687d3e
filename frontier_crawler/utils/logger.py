"""
Logging utilities for the web crawler.
"""

import json
import logging
import logging.handlers
import platform
import sys
from datetime import datetime, timezone
from pathlib import Path

import psutil

from .config import LoggingConfig


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False)


THIRD_PARTY_LOGGERS = {
    'aiohttp': logging.WARNING,
    'asyncio': logging.WARNING,
    'urllib3': logging.WARNING,
}


def setup_logging(config: LoggingConfig) -> logging.Logger:
    """
    Configure the root logger for a crawl run.

    Args:
        config: Logging configuration

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper()))
    root_logger.handlers.clear()

    if config.json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(config.format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.file:
        log_file = Path(config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=50 * 1024 * 1024,  # 50MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for logger_name, level in THIRD_PARTY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)

    root_logger.debug(f"Logging configured (level={config.level}, file={config.file}, json={config.json})")
    return root_logger


def log_system_info():
    """Log system and environment information."""
    logger = logging.getLogger(__name__)

    logger.debug("=== SYSTEM INFORMATION ===")
    logger.debug(f"Platform: {platform.platform()}")
    logger.debug(f"Python version: {sys.version}")
    logger.debug(f"CPU cores: {psutil.cpu_count()}")
    logger.debug(f"Memory: {psutil.virtual_memory().total / 1024**3:.1f} GB")
