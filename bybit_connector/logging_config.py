"""
Structured logging setup.

All modules log through structlog with a module-level logger:

    logger = structlog.get_logger(__name__)
    logger.info("ws_session_state_changed", category="linear", state="active")

Call setup_logging() once at application start. Secrets and signatures are
never passed to the logger.
"""

import logging
from typing import Optional

import structlog

from bybit_connector.config.models import LogFormat, LoggingConfig, LogLevel

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = ("websockets", "aiohttp.access", "aiohttp.client")


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Configure structured logging for the connector.

    Args:
        config: Logging configuration. Defaults to JSON at INFO.

    Example:
        >>> from bybit_connector.config import LoggingConfig, LogFormat
        >>> setup_logging(LoggingConfig(format=LogFormat.TEXT))
    """
    config = config or LoggingConfig()

    renderer = (
        structlog.processors.JSONRenderer()
        if config.format == LogFormat.JSON
        else structlog.dev.ConsoleRenderer()
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, config.level.value),
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(
            max(logging.WARNING, getattr(logging, config.level.value))
        )


__all__ = ["setup_logging", "LogFormat", "LogLevel"]
