"""Tests for logging configuration."""

import logging

from fitpair.app_logging import configure_logging


def test_configure_logging_idempotent() -> None:
    logger = logging.getLogger("fitpair")
    logger.handlers.clear()

    configure_logging()
    first_count = len(logger.handlers)

    configure_logging(logging.DEBUG)
    second_count = len(logger.handlers)

    assert first_count == 1
    assert second_count == 1
    assert logger.level == logging.DEBUG
    assert logger.propagate is False


def test_configure_logging_accepts_level_names() -> None:
    logger = configure_logging("warning")

    assert logger.name == "fitpair"
    assert logger.level == logging.WARNING

    configure_logging()
