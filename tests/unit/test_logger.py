"""Tests for logger construction and secret redaction."""

import logging
from pathlib import Path

import pytest

from faros.sync_cli.logger import (
    SecretRedactingFilter,
    create_logger,
    parse_level,
    register_secret,
)


def test_create_logger_writes_file(tmp_path: Path) -> None:
    """Records are appended to the log file with the standard format."""
    log_file = tmp_path / "faros.log"
    logger = create_logger("info", log_file, name="test.logger.file")

    logger.info("hello")
    logger.debug("hidden")
    for handler in logger.handlers:
        handler.flush()

    content = log_file.read_text()
    assert " - test.logger.file - INFO - hello" in content
    assert "hidden" not in content


def test_create_logger_redacts_secrets(tmp_path: Path) -> None:
    """Known secrets are masked, including ones registered later."""
    log_file = tmp_path / "faros.log"
    logger = create_logger(
        "debug", log_file, secrets=["faros-key", None], name="test.logger.redact"
    )
    register_secret(logger, "lin_api_123")

    logger.info("using faros-key")
    logger.getChild("client").debug("linear key %s", "lin_api_123")
    for handler in logger.handlers:
        handler.flush()

    content = log_file.read_text()
    assert "faros-key" not in content
    assert "lin_api_123" not in content
    assert content.count("***") == 2


def test_create_logger_without_outputs_is_silent() -> None:
    """A logger with no file or stderr output has only a null handler."""
    logger = create_logger("info", None, name="test.logger.silent")

    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], logging.NullHandler)
    assert logger.propagate is False


def test_create_logger_replaces_handlers(tmp_path: Path) -> None:
    """Creating the logger twice does not duplicate handlers."""
    create_logger("info", tmp_path / "a.log", name="test.logger.twice")
    logger = create_logger("info", tmp_path / "b.log", stderr=True, name="test.logger.twice")

    assert len(logger.handlers) == 2


def test_redacting_filter_no_secrets() -> None:
    """Records pass through untouched without secrets."""
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "value %s", ("a",), None)

    assert SecretRedactingFilter().filter(record)
    assert record.getMessage() == "value a"


@pytest.mark.parametrize(
    ("name", "level"),
    [("debug", logging.DEBUG), ("INFO", logging.INFO), ("warn", logging.WARNING)],
)
def test_parse_level(name: str, level: int) -> None:
    """Config level names map to logging levels."""
    assert parse_level(name) == level


def test_parse_level_unknown() -> None:
    """Unknown level names are rejected without a chained lookup error."""
    with pytest.raises(ValueError, match="Unknown log level") as exc_info:
        parse_level("verbose")

    assert exc_info.value.__cause__ is None
    assert exc_info.value.__suppress_context__
