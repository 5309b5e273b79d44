"""Logging configuration for the Drainguard sidecar.

Keep configuration generation separate from its application:

    - `get_logging_config`: Build a `logging.config.dictConfig` dictionary
      from the settings. Pure, no global state touched.
    - `configure_logging`: Apply that dictionary and configure structlog, once
      at process startup (before uvicorn starts, since uvicorn runs with
      ``log_config=None`` and inherits this setup).
    - Context helpers re-exported from `structlog.contextvars` so request
      correlation IDs land on every line logged during a request.
"""

import logging.config
from typing import Any

import structlog
from structlog.types import Processor

from app.config import Settings


# =============================================================================
# CONFIGURATION GENERATORS
# =============================================================================


def get_common_processors() -> list[Processor]:
    """Return the processor chain shared by structlog and foreign loggers.

    Returns:
        list[Processor]: Ordered list of structlog processors applied before
        rendering.
    """
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def get_renderer(settings: Settings) -> Processor:
    """Select the final renderer for the deployment environment.

    Staging and production emit one JSON object per line for log shippers;
    development gets the colored console renderer.
    """
    if settings.ENVIRONMENT in ("production", "staging"):
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def get_logging_config(settings: Settings) -> dict[str, Any]:
    """Generate a logging configuration dictionary for `logging.config.dictConfig`.

    Args:
        settings: Settings providing LOG_LEVEL, ENVIRONMENT and the list of
            noisy third-party modules to silence below WARNING.

    Returns:
        dict[str, Any]: Configuration dictionary compatible with dictConfig.
    """
    log_level = settings.LOG_LEVEL.upper()

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": "structlog.stdlib.ProcessorFormatter",
                "processor": get_renderer(settings),
                "foreign_pre_chain": get_common_processors(),
            },
        },
        "handlers": {
            "console": {
                "level": log_level,
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": True,
            },
            **{
                lib: {"level": "WARNING", "propagate": True}
                for lib in settings.LOGGING_NOISY_MODULES
            },
        },
    }


def configure_structlog_wrapper() -> None:
    """Configure structlog to hand its events to the stdlib formatter."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *get_common_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def configure_logging(settings: Settings) -> None:
    """Apply the stdlib logging configuration and the structlog wrapper.

    Args:
        settings: Validated application settings.
    """
    logging.config.dictConfig(get_logging_config(settings))
    configure_structlog_wrapper()


# =============================================================================
# LOGGER RETRIEVAL
# =============================================================================


def get_logger(name: str | None = None) -> Any:
    """Retrieve a structlog logger, optionally named."""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


# =============================================================================
# CONTEXT VARIABLE EXPORTS
# =============================================================================

bind_contextvars = structlog.contextvars.bind_contextvars
clear_contextvars = structlog.contextvars.clear_contextvars
