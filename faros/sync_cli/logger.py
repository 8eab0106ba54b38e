"""Construction of the process logger.

The logger is created once at process entry and handed to each component
that needs it. Nothing in this package configures logging on import.
"""

import logging
import sys
from collections.abc import Iterable
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "faros.log"
REDACTED = "***"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class SecretRedactingFilter(logging.Filter):
    """Replace known secret values in log records with a placeholder."""

    def __init__(self, secrets: Iterable[str | None] = ()) -> None:
        """Initialize with the secret values to hide."""
        super().__init__()
        self.secrets = {s for s in secrets if s}

    def add_secret(self, secret: str | None) -> None:
        """Register another secret value."""
        if secret:
            self.secrets.add(secret)

    def filter(self, record: logging.LogRecord) -> bool:
        """Rewrite the record message with secrets masked."""
        if not self.secrets:
            return True

        message = record.getMessage()
        for secret in self.secrets:
            message = message.replace(secret, REDACTED)
        record.msg = message
        record.args = None
        return True


def parse_level(level: str) -> int:
    """Map a config log level name to a logging level."""
    try:
        return _LEVELS[level.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown log level: {level}. Must be one of: debug, info, warn, error"
        ) from None


def create_logger(
    level: str = "info",
    log_file: Path | None = None,
    *,
    stderr: bool = False,
    secrets: Iterable[str | None] = (),
    name: str = "faros",
) -> logging.Logger:
    """Create the logger handle for one process invocation.

    Args:
        level: Log level name (debug, info, warn, error)
        log_file: File to append records to, or None for no file output
        stderr: Also write records to stderr
        secrets: Secret values to mask in every record
        name: Logger name

    Returns:
        Configured logger; components derive children from it

    """
    logger = logging.getLogger(name)
    logger.setLevel(parse_level(level))
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for existing in list(logger.filters):
        logger.removeFilter(existing)

    redactor = SecretRedactingFilter(secrets)
    formatter = logging.Formatter(LOG_FORMAT)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.addFilter(redactor)
        logger.addHandler(file_handler)

    if stderr:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        stream_handler.addFilter(redactor)
        logger.addHandler(stream_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def register_secret(logger: logging.Logger, secret: str | None) -> None:
    """Mask a secret learned after the logger was created."""
    for handler in logger.handlers:
        for handler_filter in handler.filters:
            if isinstance(handler_filter, SecretRedactingFilter):
                handler_filter.add_secret(secret)
