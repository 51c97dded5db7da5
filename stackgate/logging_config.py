"""Structured logging configuration for orchestrator runtime surfaces."""

import logging

import structlog


def logging_configure(level: str = "INFO", json_output: bool = False) -> None:
    """Configure stdlib logging and structlog for the process.

    Args:
        level: Root logging level name.
        json_output: Whether to render JSON lines instead of console output.

    Returns:
        None: Logging is configured as side effect.

    Raises:
        ValueError: Raised when level is not a known logging level.
    """

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def logging_get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name, typically `__name__`.

    Returns:
        structlog.stdlib.BoundLogger: Bound structlog logger.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    return structlog.get_logger(name)
