"""
Structured JSON logging for the bridge.

Every record goes through two filters before it is formatted:

    JobIdFilter      tags the record with the scheduler job that emitted it
                     (refresh:<uuid>, alerts:<uuid>, session_renewal) or "-"
    RedactingFilter  folds line breaks and masks credentials: the Google
                     cookie blob and API key, plus any Bearer/Basic token

Output goes to stderr and to a size-rotated file, one JSON object per line.
"""
import contextvars
import logging
import logging.handlers
import os
import re
from datetime import datetime, timezone
from typing import Iterable, Optional, Set

from pythonjsonlogger import jsonlogger

from nestcam.core.config import settings

job_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'job_id', default=None
)

APP_VERSION = "1.0.0"

LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'data', 'logs')
LOG_FILE_NAME = 'nestcam.log'
LOG_FILE_MAX_BYTES = 20 * 1024 * 1024
LOG_FILE_BACKUPS = 5

REDACTED = "[redacted]"

# Chatty libraries only report warnings and above
QUIET_LOGGERS = (
    'uvicorn.access',
    'httpx',
    'httpcore',
    'apscheduler.executors.default',
    'pyhap',
)

_AUTH_HEADER_RE = re.compile(r'\b(Bearer|Basic)\s+[A-Za-z0-9._~+/=-]+')
_LINE_BREAK_RE = re.compile(r'[\r\n]+')

# Literal secret values registered at runtime
_secrets: Set[str] = set()


def register_secrets(values: Iterable[Optional[str]]) -> None:
    """Mask these values wherever they appear in a log message."""
    for value in values:
        # Very short values would mask unrelated text
        if value and len(value) >= 8:
            _secrets.add(value)


def redact(text: str) -> str:
    text = _LINE_BREAK_RE.sub(' ', text)
    text = _AUTH_HEADER_RE.sub(lambda m: f"{m.group(1)} {REDACTED}", text)
    for secret in _secrets:
        if secret in text:
            text = text.replace(secret, REDACTED)
    return text


class JobIdFilter(logging.Filter):
    """Adds job_id to every record from the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.job_id = job_id_var.get() or "-"
        return True


class RedactingFilter(logging.Filter):
    """
    Cleans message text before it is written.

    Camera names and remote error bodies end up in messages, so line breaks
    are folded to spaces; authorization values never reach the log.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if isinstance(record.args, tuple) and record.args:
            record.args = tuple(redact(a) if isinstance(a, str) else a for a in record.args)
        return True


class JsonLogFormatter(jsonlogger.JsonFormatter):
    """
    One JSON object per record:

    {"timestamp": "2026-10-19T10:30:00+00:00", "level": "INFO",
     "logger": "nestcam.services.event_poller", "job_id": "alerts:6c1e...",
     "message": "Motion detected on Porch", "camera_uuid": "...", ...}
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        # The format string declares these keys, so they arrive as None
        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        if not log_record.get('message'):
            log_record['message'] = record.getMessage()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['job_id'] = getattr(record, 'job_id', '-')
        log_record['source'] = f"{record.module}:{record.funcName}:{record.lineno}"


def _attach(root: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(JobIdFilter())
    handler.addFilter(RedactingFilter())
    root.addHandler(handler)


def setup_logging(
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
    app_version: Optional[str] = None
) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        log_level: Override log level (default from settings.LOG_LEVEL)
        log_dir: Override log directory (default: backend/data/logs)
        app_version: Application version for startup logs

    Returns:
        The configured root logger
    """
    global APP_VERSION
    if app_version:
        APP_VERSION = app_version

    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    directory = log_dir or LOG_DIR
    os.makedirs(directory, exist_ok=True)

    formatter = JsonLogFormatter('%(timestamp)s %(level)s %(name)s %(message)s')

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    _attach(root, logging.StreamHandler(), level, formatter)
    _attach(
        root,
        logging.handlers.RotatingFileHandler(
            os.path.join(directory, LOG_FILE_NAME),
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding='utf-8',
        ),
        level,
        formatter,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    register_secrets([settings.NEST_COOKIES, settings.NEST_API_KEY])
    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_job_id(job_id: str) -> contextvars.Token:
    """Tag log records in the current context with a job id."""
    return job_id_var.set(job_id)


def get_job_id() -> Optional[str]:
    return job_id_var.get()


def clear_job_id(token: contextvars.Token) -> None:
    job_id_var.reset(token)
