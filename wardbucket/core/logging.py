"""
Logging configuration for Ward Data Bucket

JSON lines in production, coloured console output everywhere else. Every
record emitted while a request is being handled carries that request's id.
"""
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from wardbucket.core.config import settings

# Set by the request middleware, read by RequestIdFilter
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


class RequestIdFilter(logging.Filter):
    """Stamps ``request_id`` on records that do not already have one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding service and environment fields."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['request_id'] = getattr(record, 'request_id', '-')
        log_record['environment'] = settings.ENVIRONMENT
        log_record['service'] = 'wardbucket-api'

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)


class DevelopmentFormatter(logging.Formatter):
    """Coloured level names for a terminal."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        # Colour a copy so other handlers see the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def _build_formatter() -> logging.Formatter:
    if settings.ENVIRONMENT == 'production':
        return CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')
    return DevelopmentFormatter(
        '%(asctime)s | %(levelname)-8s | %(request_id)s | %(name)s:%(lineno)d | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def setup_logging() -> None:
    """Install a single stdout handler on the root logger."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))
    root_logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(_build_formatter())
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured for {settings.ENVIRONMENT} environment")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
