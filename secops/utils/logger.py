"""Structured JSON logging configuration for the security-operations core."""

import logging
import sys
from typing import Any, Optional

import structlog


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure structured JSON logging for the application.

    structlog is routed through the stdlib logging backend so that
    ``add_logger_name`` can read ``logger.name`` and so that an optional
    log file receives the same JSON lines as stdout.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(message)s",  # structlog renders the full JSON line
        handlers=handlers,
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Return a structlog logger bound to *name*.

    Log calls take an event name plus keyword fields::

        logger.info("block_applied", subject="10.0.0.1", rule_id="brute-force")
    """
    return structlog.get_logger(name)
