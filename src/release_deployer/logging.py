"""Structured logging for the release deployer.

Every module logs through ``get_logger`` with snake_case event names and
keyword context. Lines emitted while a target is being processed carry
``target=<name>`` via ``target_context``.
"""

import logging
import sys
from contextlib import AbstractContextManager

import structlog

from release_deployer.config import get_settings

# Per-request INFO lines from the GitHub client would drown out deploy events
QUIET_LOGGERS = ("httpx", "httpcore")


def _renderer_chain(development: bool) -> list[structlog.types.Processor]:
    if development:
        return [structlog.dev.ConsoleRenderer(colors=True)]
    # journald and log shippers get one JSON object per line, tracebacks included
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def setup_logging() -> None:
    """Configure structlog and the stdlib root logger from ``Settings``."""
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            *_renderer_chain(settings.is_development),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # httpx and asyncio report through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def target_context(target: str) -> AbstractContextManager[None]:
    """Bind ``target=<name>`` to every log line emitted inside the block."""
    return structlog.contextvars.bound_contextvars(target=target)
