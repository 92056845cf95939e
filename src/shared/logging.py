"""Logging configuration shared by the app, the sweep runner and the CLI."""

import logging

import structlog

from shared import config


def configure_logging(log_format: str | None = None, level: str | None = None) -> None:
    """Install structlog processors and quiet noisy library loggers."""
    log_format = log_format or config.LOG_FORMAT
    level_no = logging.getLevelName((level or config.LOG_LEVEL).upper())
    if not isinstance(level_no, int):
        level_no = logging.INFO

    logging.basicConfig(format="%(message)s", level=level_no)

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        cache_logger_on_first_use=True,
    )

    # Suppress noisy library loggers
    logging.getLogger("protean").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
