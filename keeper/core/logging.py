"""Structured logging for the keeper.

structlog events are handed to the stdlib ``logging`` machinery and rendered
by a single root handler, so records from third-party libraries (web3,
urllib3) come out in the same format as the keeper's own events.
"""

import logging
import sys
from typing import cast

import structlog
from structlog.stdlib import BoundLogger, ProcessorFormatter
from structlog.types import Processor

LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Libraries that log every RPC round trip at debug/info
_CHATTY_LOGGERS = ("web3", "urllib3")


def _shared_processors() -> list[Processor]:
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_logging(
    testing: bool = False, level: str = "info", json_logs: bool = True
) -> None:
    """Configure structured logging for the keeper.

    Args:
        testing: Console output and no logger caching, for test runs
        level: Log level name (debug, info, warning, error, critical)
        json_logs: Render JSON lines instead of console output
    """
    log_level = LOG_LEVELS.get(level.lower(), logging.INFO)
    shared = _shared_processors()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=not testing,
    )

    renderer: list[Processor]
    if json_logs and not testing:
        renderer = [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=False)]

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        ProcessorFormatter(
            processors=[ProcessorFormatter.remove_processors_meta, *renderer],
            foreign_pre_chain=shared,
        )
    )

    # One handler on the root logger; reconfiguring replaces it
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str | None = None) -> BoundLogger:
    """Get a logger, usually for the calling module's ``__name__``."""
    return cast(BoundLogger, structlog.get_logger(name))


def get_tick_logger(tick_id: int | None = None, name: str | None = None) -> BoundLogger:
    """Get a logger with tick context.

    Args:
        tick_id: Optional tick sequence number to bind to logger
        name: Optional logger name

    Returns:
        Configured logger with tick context
    """
    logger: BoundLogger = get_logger(name)
    if tick_id is not None:
        logger = logger.bind(tick=tick_id)
    return logger
