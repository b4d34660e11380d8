"""Structured logging configuration using structlog."""

import logging
import sys
from typing import IO, TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from registerdata.config.settings import LoggingConfig

_BASE_PROCESSORS: tuple[structlog.types.Processor, ...] = (
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
)


def _render_chain(
    json_output: bool, stream: IO[str]
) -> list[structlog.types.Processor]:
    """Processors that turn an event dict into its final line."""
    if json_output:
        return [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [structlog.dev.ConsoleRenderer(colors=stream.isatty())]


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    stream: IO[str] | None = None,
) -> None:
    """
    Configure structured logging for applications embedding registerdata.

    The library itself never calls this; it only emits events through
    ``get_logger``. Events bound with ``log_context`` carry the bound keys
    (typically ``registry`` and ``period``) in every renderer.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, render one JSON object per event.
        stream: Output stream, defaults to stderr.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    stream = stream or sys.stderr

    logging.basicConfig(format="%(message)s", stream=stream, level=log_level)

    structlog.configure(
        processors=[*_BASE_PROCESSORS, *_render_chain(json_output, stream)],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )


def configure_from_config(
    config: "LoggingConfig", stream: IO[str] | None = None
) -> None:
    """Configure logging from the ``logging`` section of a RegistryConfig."""
    configure_logging(
        level=config.level, json_output=config.json_output, stream=stream
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, usually named after the calling module."""
    return structlog.get_logger(name)


def log_context(**kwargs: Any) -> structlog.contextvars.bound_contextvars:
    """
    Bind keys to every event logged inside the ``with`` block.

    Example:
        with log_context(registry="bef", period="2020"):
            logger.info("batch_deserialized", rows=120)
    """
    return structlog.contextvars.bound_contextvars(**kwargs)
