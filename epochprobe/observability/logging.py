from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from epochprobe.config import Settings


SERVICE_NAME = "epochprobe"

# uvicorn reports startup, shutdown and protocol errors on these.
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error")


def _static_fields(environment: str) -> Any:
    def add_static_fields(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_static_fields


def configure_logging(settings: Settings) -> None:
    """Send structlog and stdlib records to stdout as one JSON object per line.

    DEBUG in development, INFO in production. Repeated calls replace the
    previous configuration.
    """

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        _static_fields(settings.environment),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[structlog.stdlib.filter_by_level, *shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, structlog.processors.JSONRenderer()],
            foreign_pre_chain=shared,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)

    for name in _SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = []
        server_logger.propagate = True
        server_logger.setLevel(settings.log_level)
