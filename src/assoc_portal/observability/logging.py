"""
assoc_portal.observability.logging

Structured logging for the portal.

Responsibilities:
- Send structlog events and stdlib records (uvicorn, SQLAlchemy) to stdout.
- Render JSON lines by default, or console lines when `ASSOC_LOG_FORMAT=console`.
- Hand out bound loggers.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Chatty third-party loggers kept at WARNING unless the portal itself runs at DEBUG.
_NOISY_LOGGERS = ("aiosqlite", "sqlalchemy.engine")


def configure_logging(*, service_name: str, level: str, json_logs: bool = True) -> None:
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_service_name(service_name),
    ]
    if json_logs:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _add_service_name(service_name: str):
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


# --- Module Notes -----------------------------------------------------------
# Per-request fields (request id, client id prefix) are bound via contextvars in
# `observability.middleware`. ConsoleRenderer formats exceptions itself, so
# `dict_tracebacks` is only used for JSON output.
