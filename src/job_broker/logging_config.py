"""Structured logging configuration using structlog.

JSON output outside development, colored console output otherwise. Request
handlers bind a request_id and the settlement sweep binds a sweep_id, so
every entry emitted while handling one action can be correlated.

Ids, amounts and statuses may be passed as UUID, Decimal or enum values;
they are rendered as plain strings so JSON lines stay parseable and money
keeps its two decimal places.

Usage:
    from job_broker.logging_config import setup_logging, get_logger
    setup_logging(log_level="DEBUG", json_logs=False)
    logger = get_logger(__name__)
    logger.info("job.assigned", job_id=job.id, price=bid.price)
"""

from __future__ import annotations

import enum
import logging
import sys
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog

QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore", "aiosqlite", "mcp")


def render_domain_values(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Turn UUIDs, Decimals, enums and datetimes into strings."""
    for key, value in event_dict.items():
        if isinstance(value, enum.Enum):
            event_dict[key] = str(value.value)
        elif isinstance(value, uuid.UUID | Decimal):
            event_dict[key] = str(value)
        elif isinstance(value, datetime):
            event_dict[key] = value.isoformat()
    return event_dict


def setup_logging(log_level: str = "DEBUG", json_logs: bool = False) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: Standard Python log level string (DEBUG, INFO, WARNING, etc.)
        json_logs: JSON lines when True, colored console output when False.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        render_domain_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: structlog.types.Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.DEBUG))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger; context variables are merged in."""
    return structlog.get_logger(name)
