"""Structured logging configuration for the issuer proxy.

structlog renders events through the standard library handlers installed by
``python_logger_config``. Request-scoped values such as the correlation id
are bound with ``structlog.contextvars`` and merged into every event.
"""

import logging
from typing import Any, Dict, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import BoundLogger

from .config import Config, get_config
from .python_logger_config import resolve_level

_logging_config: Optional[Dict[str, Any]] = None


def configure_logging(config: Optional[Config] = None) -> Dict[str, Any]:
    """Configure structlog for the application.

    Args:
        config: Configuration to read LOG_LEVEL and LOG_FORMAT from

    Returns:
        Dict with the root structlog logger and the effective settings
    """
    config = config or get_config()

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if config.LOG_FORMAT == "json":
        processors.append(JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = resolve_level(config.LOG_LEVEL)
    logging.getLogger("issuer_proxy").setLevel(level)

    global _logging_config
    _logging_config = {
        "logger": structlog.get_logger("issuer_proxy"),
        "level": level,
        "format": config.LOG_FORMAT,
    }
    return _logging_config


def get_logger(name: str) -> BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
