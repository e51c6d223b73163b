"""Logging setup.

structlog is configured once per process; modules grab a bound logger with
``get_logger(__name__)`` and log events as key/value pairs::

    log = get_logger(__name__)
    log.info("connected", url=url, attempt=2)
"""

import logging
import sys

import structlog

_configured = False


def configure_logging(debug: bool = False, stream=None) -> None:
    """Configure structlog for console output.

    Calling it again only changes the level, so a CLI flag parsed after
    the first log call still takes effect.
    """
    global _configured

    level = logging.DEBUG if debug else logging.INFO
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
        structlog.dev.ConsoleRenderer(colors=False),
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        # stderr is looked up per logger so redirected streams are honoured
        logger_factory=lambda *args: structlog.PrintLogger(file=stream or sys.stderr),
        cache_logger_on_first_use=False,
    )
    _configured = True


def get_logger(name: str, **context):
    """Return a structlog logger bound to ``name`` and any extra context."""
    if not _configured:
        configure_logging()
    # lazy proxy: module loggers pick up later configure_logging() calls
    return structlog.get_logger(logger_name=name, **context)
