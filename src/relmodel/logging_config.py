"""
Centralized logging configuration.

Configure once in the application entry point; library modules only call
structlog.get_logger(__name__).
"""

import logging
import sys

import structlog

from relmodel.core.config_loader import get_config

# Modules that log one debug event per primitive edit
NOISY_MODULES = ("relmodel.core.key_graph", "relmodel.core.navigator")


def configure_logging(level: int | str | None = None, fmt: str | None = None) -> None:
    """
    Configure stdlib logging and structlog for the whole application.

    Idempotent: does nothing if the root logger already has handlers.

    Args:
        level: Log level (int or name such as "DEBUG"); defaults to the
            configured log_level
        fmt: "console" for human-readable lines, "json" for one JSON object
            per line; defaults to the configured log_format
    """
    root_logger = logging.getLogger()

    if root_logger.handlers:
        return

    config = get_config()
    level = config.log_level if level is None else level
    fmt = config.log_format if fmt is None else fmt

    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    renderer = structlog.processors.JSONRenderer() if fmt == "json" else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    for name in NOISY_MODULES:
        logging.getLogger(name).setLevel(max(level, logging.INFO))
