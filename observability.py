"""Observability helpers: structured logging.

Call `init_observability` once, before the FastAPI app is created. Log lines
are JSON by default (``LOG_FORMAT=console`` for a human-readable dev format)
and carry whatever the request middleware bound into structlog contextvars.
"""
from __future__ import annotations

import logging
import os

import structlog

_configured = False


def _setup_logging() -> None:
    """Configure structlog on top of the stdlib root logger."""

    log_format = os.getenv("LOG_FORMAT", "json").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "console":
        final_processor = structlog.dev.ConsoleRenderer()
    else:
        final_processor = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [final_processor],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.addHandler(logging.StreamHandler())
    root_logger.setLevel(log_level)

    # uvicorn's access log duplicates the request logging done here
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def init_observability() -> None:
    """Setup logging. Safe to call more than once; only the first call acts."""
    global _configured
    if _configured:
        return
    _setup_logging()
    _configured = True

    structlog.get_logger(__name__).info("Observability initialized")
