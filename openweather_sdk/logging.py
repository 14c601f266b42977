import logging
import sys
from typing import Optional, TextIO

import structlog

SDK_LOGGER = "openweather_sdk"


def init_logging(log_level: str = "INFO", stream: Optional[TextIO] = None) -> structlog.BoundLogger:
    """Send SDK log events to the ``openweather_sdk`` stdlib logger.

    Only that logger gets a handler and a level, so the host application's
    root logging setup is untouched. Events render as JSON lines, or for the
    console at DEBUG. Calling it again only updates the level.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    sdk_logger = logging.getLogger(SDK_LOGGER)
    sdk_logger.setLevel(level)
    if not sdk_logger.handlers:
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        sdk_logger.addHandler(handler)
        sdk_logger.propagate = False

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if level == logging.DEBUG else structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(SDK_LOGGER)


def mask_key(api_key: str) -> str:
    """Hide all but the first three characters of an API key."""
    return api_key[:3] + "*****"
