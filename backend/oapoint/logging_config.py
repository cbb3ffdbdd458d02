"""
Structured JSON logging (Monolog-style).

Every record is one JSON line on stdout:

    {"timestamp", "level", "message", "channel", "context", "extra"[, "exception"]}

``context`` always carries the current request id plus whatever business
identifiers the caller passes (attempt_id, student_id, test_id, ...);
``extra`` holds measurements such as duration_ms.

Levels come from LOG_LEVEL, and a single channel can be raised or lowered
with LOG_LEVEL_<CHANNEL>, e.g. LOG_LEVEL_JUDGE=DEBUG.
"""

import logging
import json
import os
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

# Set per request by the request-id middleware in main.py
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CHANNELS = ["http", "db", "session", "scoring", "proctoring", "judge", "ratelimit"]

LOGGER_PREFIX = "oapoint"

# Libraries that would otherwise duplicate our own request logging
QUIET_LOGGERS = {"httpx": logging.WARNING, "uvicorn.access": logging.WARNING}


def _level(name: str, default: int = logging.INFO) -> int:
    return getattr(logging, (name or "").upper(), default)


class StructuredJsonFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        entry = {
            "timestamp": now.strftime("%Y-%m-%dT%H:%M:%S.") + "{:03d}Z".format(now.microsecond // 1000),
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", None) or channel_of(record.name),
            "context": dict(getattr(record, "context", None) or {}),
            "extra": getattr(record, "extra_data", None) or {},
        }
        entry["context"].setdefault("request_id", request_id_var.get(""))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def channel_of(logger_name: str) -> str:
    """``oapoint.judge`` -> ``judge``; foreign loggers report as ``app``."""
    prefix = LOGGER_PREFIX + "."
    if logger_name.startswith(prefix):
        return logger_name[len(prefix):]
    return "app"


def setup_logging():
    """
    Install the JSON handler on the root logger and set channel levels.

    Safe to call more than once; the root handler list is replaced, not
    appended to.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(_level(LOG_LEVEL))
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        override = os.getenv("LOG_LEVEL_{}".format(channel.upper()))
        get_logger(channel).setLevel(_level(override or LOG_LEVEL))

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    return logging.getLogger("{}.{}".format(LOGGER_PREFIX, channel))


def attempt_context(attempt) -> dict:
    """Business identifiers of an attempt, for the ``context`` field."""
    return {
        "attempt_id": str(attempt.id),
        "student_id": str(attempt.student_id),
        "test_id": str(attempt.test_id),
    }


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None,
                     exc_info=None):
    """
    Emit a structured log entry. All application logging goes through here.

    Args:
        logger: channel logger from get_logger()
        level: "DEBUG", "INFO", "WARNING" or "ERROR"
        message: human-readable message
        context: business identifiers, see attempt_context()
        extra_data: measurements and other metadata
        exc_info: exception to attach as a formatted traceback
    """
    logger.log(
        _level(level),
        message,
        exc_info=exc_info,
        extra={
            "context": context or {},
            "extra_data": extra_data or {},
            "channel": channel_of(logger.name),
        },
    )


def generate_request_id() -> str:
    return str(uuid.uuid4())
