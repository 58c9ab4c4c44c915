"""Structured logging for upsert runs.

Every event is a JSON line rendered by structlog through the stdlib root
logger. Event names follow ``upsert.<area>.<what>`` (``upsert.batch.flushed``,
``upsert.metadata.unknown_type``). Credentials never reach the output: keys
that look like passwords, tokens, secrets or the database URL are redacted.

The level comes from ``Settings.LOG_LEVEL`` (environment ``UPSERT_LOG_LEVEL``)
and is read once, on import.

Usage:
    >>> from dialect_upsert.utils.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("upsert.run.started", table="orders", dialect="mysql")
"""

import logging
import os
import re
from typing import Any, Dict, MutableMapping

import structlog
from pydantic import ValidationError
from structlog.types import EventDict, Processor

from dialect_upsert.config import get_settings

SENSITIVE_PATTERNS = [
    re.compile(r".*password.*", re.IGNORECASE),
    re.compile(r".*token.*", re.IGNORECASE),
    re.compile(r".*secret.*", re.IGNORECASE),
    re.compile(r"^database_url$", re.IGNORECASE),
]

REDACTED_VALUE = "[REDACTED]"


def sanitize_for_logging(data: Dict[str, Any]) -> Dict[str, Any]:
    """Copy ``data`` with sensitive values replaced, descending into dicts.

    Example:
        >>> sanitize_for_logging({"password": "secret123", "table": "orders"})
        {'password': '[REDACTED]', 'table': 'orders'}
    """
    sanitized: Dict[str, Any] = {}
    for key, value in data.items():
        if any(pattern.match(key) for pattern in SENSITIVE_PATTERNS):
            sanitized[key] = REDACTED_VALUE
        elif isinstance(value, dict):
            sanitized[key] = sanitize_for_logging(value)
        else:
            sanitized[key] = value
    return sanitized


def sanitization_processor(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> MutableMapping[str, Any]:
    return sanitize_for_logging(dict(event_dict))


def _get_log_level() -> int:
    """Level from settings; UPSERT_LOG_LEVEL alone when other settings are invalid."""
    try:
        level_name = get_settings().LOG_LEVEL
    except ValidationError:
        # The settings error surfaces again where the settings are used
        level_name = os.getenv("UPSERT_LOG_LEVEL", "INFO")

    return getattr(logging, level_name.upper(), logging.INFO)


def _configure_structlog() -> None:
    level = _get_log_level()
    logging.basicConfig(format="%(message)s", level=level, handlers=[])

    stdout_handler = logging.StreamHandler()
    stdout_handler.setLevel(level)
    logging.root.addHandler(stdout_handler)

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        sanitization_processor,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


_configure_structlog()


def get_logger(name: str) -> Any:
    """Module-level logger; pass ``__name__``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> Any:
    """Logger carrying run-wide fields into every event.

    The engine binds ``table`` and ``dialect`` once per run so batch and
    record events can be correlated without repeating them.

    Example:
        >>> logger = bind_context(table="orders", dialect="postgres")
        >>> logger.info("upsert.batch.flushed", batch_number=1, records=500)
    """
    return structlog.get_logger().bind(**kwargs)
