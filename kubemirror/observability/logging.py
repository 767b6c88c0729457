"""structlog setup for kubemirror.

Every module asks for ``get_logger("<component>")`` and logs snake_case
events with keyword context.  Applications call :func:`setup_logging` once;
until they do, structlog's defaults apply.
"""

from __future__ import annotations

import logging
import sys

import structlog

from kubemirror.models.config import LogConfig

# Third-party loggers that are chatty at debug level.
_QUIET_LIBRARIES = ("httpx", "httpcore", "websockets")


def setup_logging(config: LogConfig | str = "info", json_output: bool = True) -> None:
    """Configure structlog output to stderr.

    Args:
        config:      A LogConfig or a bare level name.
        json_output: JSON lines when True, human-readable console output otherwise.
    """
    level_name = config.level if isinstance(config, LogConfig) else config
    log_level = getattr(logging, level_name.upper(), logging.INFO)

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Logger bound with ``component=<component>``."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
