"""Structured JSON logging to stdout and a rotating file read back by the log surface"""

import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from clover_checkout.config import settings

MAX_MESSAGE_LENGTH = 10000
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


class SanitizingFilter(logging.Filter):
    """Strip control characters from messages and truncate oversized ones"""

    def filter(self, record: logging.LogRecord) -> bool:
        message = _CONTROL_CHARS.sub("", record.getMessage())
        if len(message) > MAX_MESSAGE_LENGTH:
            message = message[:MAX_MESSAGE_LENGTH] + "... [truncated]"
        record.msg = message
        record.args = None
        return True


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """
    Configure structured JSON logging.

    Records go to stdout and, when a log file is given, to a size-rotated file of
    JSON lines (one record per line).
    """
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    sanitizer = SanitizingFilter()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(sanitizer)
    logger.addHandler(handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(sanitizer)
        logger.addHandler(file_handler)
