"""
Structured logging for the Score Alerts services.
Uses structlog for context-rich, machine-parseable logs; stdlib loggers
from third-party libraries are routed through the same renderer.
"""
from __future__ import annotations

import logging
import sys

import structlog
from shared.config import Environment, Settings, get_settings

# Libraries whose INFO/DEBUG output is noise next to event logs.
# pywebpush logs full request bodies at DEBUG.
QUIET_LIBRARIES = ("uvicorn.access", "httpx", "httpcore", "asyncio", "pywebpush", "urllib3")

_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
]


def _renderer(settings: Settings) -> structlog.types.Processor:
    if settings.environment == Environment.DEV:
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def setup_logging(service_name: str) -> None:
    """
    Configure structured logging for a service.

    Every entry carries `service` and `instance_id`; request and cycle
    handlers bind further keys through structlog.contextvars.
    """
    settings = get_settings()

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, _renderer(settings)],
            foreign_pre_chain=_PRE_CHAIN,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name, instance_id=settings.instance_id)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named structured logger."""
    return structlog.get_logger(name)
