"""
Structured logging for the volatility scanner.
Uses structlog on top of stdlib handlers so log files rotate.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

import structlog
from structlog.types import Processor

_NOISY_LOGGERS = ("asyncio", "aiohttp", "aiogram", "urllib3")


def _rotating_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def _renderer(json_logs: bool, colors: bool) -> Processor:
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=colors, exception_formatter=structlog.dev.plain_traceback)


def setup_logging(
    log_level: str = "INFO",
    log_dir: Path | None = None,
    log_to_console: bool = True,
    log_to_file: bool = True,
    json_logs: bool = False,
) -> None:
    """
    Configure structlog and the stdlib handlers behind it.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files (default: ./logs)
        log_to_console: Whether to log to stdout
        log_to_file: Whether to write volscan.log and error.log
        json_logs: Render events as JSON instead of the console format
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = []
    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        handlers.append(console_handler)

    if log_to_file:
        log_dir = log_dir or Path("logs")
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(_rotating_handler(log_dir / "volscan.log", level))
        handlers.append(_rotating_handler(log_dir / "error.log", logging.ERROR))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _renderer(json_logs, colors=log_to_console and not log_to_file),
    ]

    # events go through stdlib logging so the rotating handlers receive them
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", level=level, handlers=handlers, force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)


class LoggerMixin:
    """Gives a class a ``logger`` property bound to its class name."""

    @property
    def logger(self) -> structlog.BoundLogger:
        return get_logger(self.__class__.__name__)


class log_context:
    """
    Bind key/value pairs to every log event emitted inside the block.

    Usage:
        with log_context(cycle_id="a1b2"):
            logger.info("cycle_started")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
