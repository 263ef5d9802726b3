"""
structlog setup for the challenge server.

Events are key/value pairs (``challenge_created``, ``solution_rejected``,
``submission_accepted``...) rendered as JSON lines when ``LOG_FORMAT=json``
and as console output otherwise. HMAC keys, payloads and form values are
never passed to a logger.
"""

import logging
import sys

import structlog

from powcaptcha.config import settings


def _renderer():
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging() -> None:
    """Configure structlog, plus stdlib logging for uvicorn and starlette."""
    level = logging.getLevelName(settings.log_level.upper())

    structlog.configure(
        processors=[
            # Correlation ID bound by LoggingMiddleware
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            _renderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # Request lines already come from LoggingMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
