"""
Logger tests - output format, level filtering and the singleton contract
"""

import io

import pytest

from utils.logger import Logger, get_logger, get_category_logger, configure_logger
from models.enums import LogLevel, LogCategory


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def logger(stream):
    return Logger(min_level=LogLevel.DEBUG, use_colors=False, stream=stream)


def test_message_with_details(logger, stream):
    logger.info(LogCategory.ELECTION, "Renewed lease", identity="operator-0", version=7)

    lines = stream.getvalue().splitlines()
    assert lines[0].endswith("ELECTION   ✓ Renewed lease")
    assert lines[1].strip() == "├─ identity: operator-0"
    assert lines[2].strip() == "└─ version: 7"


def test_level_filtering(logger, stream):
    logger.min_level = LogLevel.WARN
    logger.info(LogCategory.SYSTEM, "hidden")
    logger.warn(LogCategory.SYSTEM, "shown")

    output = stream.getvalue()
    assert "hidden" not in output
    assert "⚠ shown" in output


def test_bound_logger_uses_category(logger, stream):
    log = logger.for_category(LogCategory.SUPERVISOR)
    log.error("Control loop failed", name="cluster")
    log.with_category(LogCategory.SHUTDOWN).debug("draining")

    output = stream.getvalue()
    assert "SUPERVISOR ✗ Control loop failed" in output
    assert "SHUTDOWN   · draining" in output


def test_exc_info_appends_traceback(logger, stream):
    try:
        raise RuntimeError("lease store exploded")
    except RuntimeError:
        logger.error(LogCategory.LEASE, "Store failure", exc_info=True)

    output = stream.getvalue()
    assert "Traceback" in output
    assert "RuntimeError: lease store exploded" in output


def test_colors_can_be_disabled(stream):
    colored = Logger(use_colors=True, stream=stream)
    colored.info(LogCategory.API, "colored")
    assert "\033[" in stream.getvalue()


def test_configure_logger_keeps_singleton():
    original = get_logger()
    previous = (original.min_level, original.use_colors)
    try:
        configure_logger(LogLevel.DEBUG, use_colors=False)
        assert get_logger() is original
        assert original.min_level is LogLevel.DEBUG
        assert get_category_logger(LogCategory.CONFIG)._base is original
    finally:
        configure_logger(*previous)
