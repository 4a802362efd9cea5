"""
Logging setup for the auth API and Celery workers.

JSON lines in production, readable text in development. Every record passes
through ``SecretRedactionFilter`` so bearer tokens and credential fields that
slip into a message or ``extra`` never reach the log sink.
"""

import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterable
from pythonjsonlogger import jsonlogger

SERVICE_NAME = "pulse-auth"

SENSITIVE_KEYS = frozenset({
    "password", "confirm_password", "password_hash",
    "token", "access_token", "refresh_token", "authorization",
})

REDACTED = "[REDACTED]"

_BEARER_RE = re.compile(r"(Bearer\s+)[A-Za-z0-9\-_.]+", re.IGNORECASE)
_JWT_RE = re.compile(r"eyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+")


def redact(text: str) -> str:
    text = _BEARER_RE.sub(rf"\1{REDACTED}", text)
    return _JWT_RE.sub(REDACTED, text)


class SecretRedactionFilter(logging.Filter):
    """Scrub JWTs from messages and blank sensitive ``extra`` attributes."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        for key in SENSITIVE_KEYS.intersection(record.__dict__):
            setattr(record, key, REDACTED)
        return True


class PulseJsonFormatter(jsonlogger.JsonFormatter):
    """Adds service, timestamp and source fields to every JSON record."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record['service'] = SERVICE_NAME
        log_record['timestamp'] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name

        # Source location only where someone will go looking for it
        if record.levelno >= logging.WARNING:
            log_record['location'] = f"{record.module}.{record.funcName}:{record.lineno}"


def _quiet(names: Iterable[str], level: int) -> None:
    for name in names:
        logging.getLogger(name).setLevel(level)


def setup_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING, ...)
        json_logs: JSON lines when True, plain text otherwise
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if json_logs:
        handler.setFormatter(PulseJsonFormatter('%(level)s %(logger)s %(message)s'))
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
    handler.addFilter(SecretRedactionFilter())

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.addHandler(handler)

    _quiet(("urllib3", "boto3", "botocore", "sqlalchemy.engine"), logging.WARNING)
    _quiet(("passlib",), logging.ERROR)

    # uvicorn installs its own handlers; send its records through ours
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers = []
        uv_logger.propagate = True
