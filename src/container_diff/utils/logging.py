"""Logging setup for the container_diff logger tree.

Everything logs below the ``container_diff`` logger, which writes to stderr
so that stdout stays reserved for rendered reports.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Iterator, TextIO

ROOT_LOGGER = "container_diff"

PLAIN_FORMAT = "%(levelname)s: %(message)s"
STRUCTURED_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class StructuredFormatter(logging.Formatter):
    """Formatter that appends context fields as sorted key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = getattr(record, "extra_fields", None)
        if not fields:
            return message
        pairs = " ".join(f"{key}={_quote(value)}" for key, value in sorted(fields.items()))
        return f"{message} {pairs}"


def _quote(value: Any) -> str:
    text = str(value)
    if not text or any(char.isspace() for char in text):
        return repr(text)
    return text


def configure_logging(
    level: str = "INFO",
    structured: bool = False,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Configure the container_diff logger.

    Calling this again replaces the previous handler rather than adding one.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Include timestamps, logger names and context fields
        stream: Destination stream, stderr by default

    Returns:
        The configured package logger

    Raises:
        ValueError: If the level name is unknown
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")

    handler = logging.StreamHandler(stream or sys.stderr)
    if structured:
        handler.setFormatter(StructuredFormatter(STRUCTURED_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(numeric)
    logger.handlers = [handler]
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger below the container_diff logger.

    Args:
        name: Module name, e.g. ``"prepper"``

    Returns:
        Logger named ``container_diff.<name>``
    """
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """Adapter that attaches fixed context fields to every record.

    Fields passed per call through ``extra={"extra_fields": {...}}`` are
    merged over the adapter's own.
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        extra = dict(kwargs.get("extra") or {})
        extra["extra_fields"] = {**self.extra, **extra.get("extra_fields", {})}
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger_with_context(name: str, **context: Any) -> LoggerAdapter:
    """Get a logger that tags its records, e.g. with the image being prepared."""
    return LoggerAdapter(get_logger(name), context)


@contextmanager
def log_duration(logger: logging.Logger | LoggerAdapter, action: str, level: int = logging.INFO) -> Iterator[None]:
    """Log how long a block took once it completes without raising."""
    start = time.monotonic()
    yield
    logger.log(level, f"{action} in {time.monotonic() - start:.2f}s")
