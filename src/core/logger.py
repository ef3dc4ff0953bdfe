"""structlog configuration and request/queue log context."""

from __future__ import annotations

import logging
from typing import Any

import structlog

from src.core.config import get_settings


_CONFIGURED = False
_CONTEXT_KEYS = ("request_id", "org_id", "queue_id")


def _add_default_context(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    del logger, method_name
    for key in _CONTEXT_KEYS:
        event_dict.setdefault(key, None)
    return event_dict


def _renderer(log_format: str) -> Any:
    if log_format.strip().lower() == "console":
        return structlog.dev.ConsoleRenderer(colors=False)
    return structlog.processors.JSONRenderer(sort_keys=True)


def configure_logging() -> None:
    """Configure structlog once; JSON lines unless LOG_FORMAT=console."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format="%(message)s")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_default_context,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _renderer(settings.log_format),
        ],
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


def bind_request_context(request_id: str, org_id: str | None = None) -> None:
    structlog.contextvars.bind_contextvars(request_id=request_id, org_id=org_id)


def bind_queue_context(queue_id: str) -> None:
    structlog.contextvars.bind_contextvars(queue_id=queue_id)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
