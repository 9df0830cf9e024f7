"""
structlog setup for the sync service.

Every line carries the sync context bound with log_context() (user_id,
message_id) and email text fields are clipped before rendering, so a log
line never holds a whole subject or provider error dump.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

from jobtrack.config import settings

# Email-derived fields and their maximum rendered length
CLIPPED_FIELDS = {
    "subject": 80,
    "sender": 120,
    "error": 300,
}

# Chatty at INFO: one line per HTTP request or job tick
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "google_genai", "urllib3")


def clip_email_fields(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor that shortens the fields in CLIPPED_FIELDS."""
    for key, limit in CLIPPED_FIELDS.items():
        value = event_dict.get(key)
        if isinstance(value, str) and len(value) > limit:
            event_dict[key] = value[: limit - 1] + "…"
    return event_dict


def configure_logging(log_level: str | None = None, json_output: bool | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR (default: settings.log_level)
        json_output: JSON lines if True, colored console if False (default: settings.json_logs)
    """
    log_level = (log_level or settings.log_level).upper()
    if json_output is None:
        json_output = settings.json_logs

    level = getattr(logging, log_level)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    if level > logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        clip_email_fields,
    ]

    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind values to every log line inside the block, restoring the outer context on exit."""
    with structlog.contextvars.bound_contextvars(**values):
        yield
