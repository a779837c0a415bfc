import logging
import sys

import structlog
from structlog.stdlib import LoggerFactory

LOG_FORMATS = ("console", "json")


def configure_logging(log_level="INFO", log_format="console", force=False):
    """Configure structured logging for the CLI and batch workers."""
    if structlog.is_configured() and not force:
        return

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, str(log_level).upper(), logging.INFO),
        stream=sys.stderr,
        force=True,
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
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
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.get_logger().debug("Logging configured", log_level=log_level, log_format=log_format)
