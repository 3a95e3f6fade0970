"""
Structured Logging

Every store failure and session-level error is logged as a structured
event (collection, document ids, owner, error message) so a failed save
can be traced without re-running it.

structlog is configured once, on top of the standard library logging
module, so log level filtering follows the configured `LOG_LEVEL`.
"""

import logging
from typing import Optional

import structlog

from expense_tracker.config import get_settings


_configured = False


def configure_logging(
    level: Optional[str] = None,
    debug_mode: Optional[bool] = None,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Log level name. Defaults to the `log_level` setting.
        debug_mode: Render logs for humans instead of JSON.
                    Defaults to the `debug_mode` setting.
    """
    global _configured

    app_settings = get_settings().app
    level = level or app_settings.log_level
    if debug_mode is None:
        debug_mode = app_settings.debug_mode

    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger().setLevel(level)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if debug_mode
        else structlog.processors.JSONRenderer()
    )

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
    _configured = True


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, configuring logging on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
