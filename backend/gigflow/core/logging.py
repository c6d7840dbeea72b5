"""
Structured logging for the negotiation and contract engine.

Every record carries the service identity plus whatever the request
middleware bound to contextvars (request id, idempotency key). Engine
values such as Party or NegotiationNode enums and Decimal amounts are
flattened so the JSON renderer emits plain strings and numbers.
"""

import logging
import sys
from decimal import Decimal
from enum import Enum

import structlog

from gigflow.core.config import get_settings

QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


def _service_context(settings):
    def processor(logger, method_name, event_dict):
        event_dict.setdefault("service", settings.APP_NAME)
        event_dict.setdefault("version", settings.APP_VERSION)
        event_dict.setdefault("env", settings.ENVIRONMENT)
        return event_dict

    return processor


def _flatten_domain_values(logger, method_name, event_dict):
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def setup_logging() -> None:
    """Configure structlog over the stdlib root handler. Safe to call more than once."""
    settings = get_settings()
    production = settings.ENVIRONMENT == "production"

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _flatten_domain_values,
    ]
    if production:
        pre_chain += [
            _service_context(settings),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if production
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if isinstance(existing.formatter, structlog.stdlib.ProcessorFormatter):
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
