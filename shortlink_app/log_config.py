"""
Logging setup.

All application logs go through structlog on top of the standard library
logging module, rendered as colored console lines in development and as
single JSON lines in production.
"""

import logging
import logging.config

import structlog

from shortlink_app.config import settings

CLICK_SINK_LOGGER = "shortlink.click_sink"

# Shared by structlog loggers and plain stdlib loggers (uvicorn, sqlalchemy)
foreign_pre_chain: list = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def configure_logging() -> None:
    """Configure structlog and stdlib logging from settings."""
    formatter = "json" if settings.is_production else "default"

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": structlog.dev.ConsoleRenderer(colors=settings.debug),
                "foreign_pre_chain": foreign_pre_chain,
            },
            "json": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": structlog.processors.JSONRenderer(),
                "foreign_pre_chain": foreign_pre_chain,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
            },
        },
        "root": {"handlers": ["console"], "level": settings.log_level},
        "loggers": {
            "sqlalchemy.engine": {"level": "WARN"},
            CLICK_SINK_LOGGER: {"level": "WARN"},
        },
    })

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *foreign_pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_click_sink():
    """
    Logger that receives click events dropped on the asynchronous path.

    Anything written here was lost: delivery of click analytics is
    at-most-once and nothing is retried.
    """
    return structlog.get_logger(CLICK_SINK_LOGGER)
