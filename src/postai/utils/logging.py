"""Structured logging configuration using structlog."""

import logging
import sys

import structlog


def setup_logging(level: str = "WARNING", console: bool | None = None) -> None:
    """Configure structlog for the CLI session.

    Log records go to stderr so the conversation printed on stdout stays readable.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        console: Force the human-readable console renderer. Defaults to True at DEBUG.
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)
    if console is None:
        console = level.upper() == "DEBUG"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_logger_name,
    ]

    renderer: structlog.types.Processor
    if console:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # httpx logs every request at INFO; keep it out of the conversation
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))
    logging.getLogger("LiteLLM").setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a bound logger for the given module name.

    Args:
        name: Logger name, typically __name__.

    Returns:
        Bound structlog logger instance.
    """
    return structlog.get_logger(name)


def bind_turn(turn_id: int) -> None:
    """Attach the current conversation turn number to every log record.

    Args:
        turn_id: Monotonic turn counter from the session.
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(turn=turn_id)
