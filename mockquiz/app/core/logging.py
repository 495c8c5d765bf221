"""Logging setup for the mock quiz service.

Records carry optional request and quiz context (``request_id``, ``user_id``,
``quiz_id`` ...) passed through ``extra=``. The ``json`` format emits one
object per line; ``text`` and ``structured`` are for humans.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from mockquiz.app.core.config import settings

# Attributes every LogRecord has; anything else on a record came from ``extra=``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """Render records as single-line JSON documents."""

    CONTEXT_FIELDS = [
        "request_id",
        "user_id",
        "quiz_id",
        "subject",
        "period_key",
        "path",
        "method",
        "status_code",
        "duration_ms",
    ]

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        doc: Dict[str, Any] = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        extra: Dict[str, Any] = {}
        for key, value in vars(record).items():
            if key in self.CONTEXT_FIELDS:
                if value is not None:
                    doc[key] = value
            elif key not in _RECORD_ATTRS:
                extra[key] = value
        if extra:
            doc["extra"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            doc["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(doc, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Give every record the context attributes so text formats never KeyError."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name in JSONFormatter.CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, None)
        return True


def get_logging_config() -> Dict[str, Any]:
    """Build the ``logging.config.dictConfig`` schema from settings."""
    log_format = str(getattr(settings, "log_format", "text")).lower()
    level = str(getattr(settings, "log_level", "INFO")).upper()

    formatters: Dict[str, Any] = {
        "standard": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
        "structured": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                      " - request_id=%(request_id)s - user_id=%(user_id)s"
        },
    }
    if log_format == "json":
        formatters["json"] = {"()": "mockquiz.app.core.logging.JSONFormatter"}
        formatter = "json"
    elif log_format == "structured":
        formatter = "structured"
    else:
        formatter = "standard"

    def logger_entry(logger_level: str) -> Dict[str, Any]:
        return {"level": logger_level, "handlers": ["console"], "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {"context": {"()": "mockquiz.app.core.logging.ContextFilter"}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": formatter,
                "stream": sys.stdout,
                "filters": ["context"],
            },
        },
        "loggers": {
            "mockquiz": logger_entry(level),
            "uvicorn": logger_entry(level),
            "uvicorn.access": logger_entry("WARNING"),
            "sqlalchemy.engine": logger_entry("WARNING"),
        },
        "root": {"level": level, "handlers": ["console"]},
    }


def setup_logging() -> None:
    logging.config.dictConfig(get_logging_config())


def get_logger(name: str = "mockquiz") -> logging.Logger:
    return logging.getLogger(name)


def get_log_context(
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    quiz_id: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build an ``extra=`` mapping, dropping fields that are ``None``.

    Example:
        >>> logger.info("Quiz committed", extra=get_log_context(user_id="u-1", quiz_id="q-1"))
    """
    context: Dict[str, Any] = {"request_id": request_id, "user_id": user_id, "quiz_id": quiz_id}
    context.update(extra)
    return {k: v for k, v in context.items() if v is not None}
