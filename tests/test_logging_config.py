"""
Tests for logging helpers
"""

import logging

import pytest

from replica_autoscaler.core.logging_config import (
    ColoredFormatter,
    QUIET_LOGGERS,
    log_separator,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_colored_formatter_restores_levelname():
    formatter = ColoredFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("test", logging.WARNING, __file__, 1, "careful", None, None)

    output = formatter.format(record)

    assert "\033[33mWARNING\033[0m careful" == output
    assert record.levelname == "WARNING"


def test_log_separator(caplog):
    logger = logging.getLogger("replica_autoscaler.test")

    with caplog.at_level(logging.INFO, logger="replica_autoscaler.test"):
        log_separator(logger, "CYCLE #1", width=20)

    messages = [r.getMessage() for r in caplog.records]
    assert messages == ["=" * 20, "CYCLE #1".center(20), "=" * 20]


def test_setup_logging_console_and_file(tmp_path, restore_root_logger):
    log_file = tmp_path / "logs" / "autoscaler.log"

    setup_logging(level="debug", log_file=str(log_file), enable_colors=False)
    logging.getLogger("replica_autoscaler.test").debug("cycle started")

    root = restore_root_logger
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 2
    assert not isinstance(root.handlers[0].formatter, ColoredFormatter)
    for handler in root.handlers:
        handler.flush()
    content = log_file.read_text()
    assert "MainThread" in content
    assert "cycle started" in content
    for name in QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING


def test_unknown_level_falls_back_to_info(restore_root_logger):
    setup_logging(level="chatty")

    assert restore_root_logger.level == logging.INFO
    assert isinstance(restore_root_logger.handlers[0].formatter, ColoredFormatter)
