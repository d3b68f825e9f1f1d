"""Tests for logging setup."""
import logging

import pytest

from config_template.config.logging_config import DEFAULT_FORMAT, get_logger, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_level(restore_root_logger):
    setup_logging("debug")
    assert restore_root_logger.level == logging.DEBUG
    assert logging.getLogger("asyncio").level == logging.WARNING

def test_setup_logging_unknown_level_defaults_to_info(restore_root_logger):
    setup_logging("chatty")
    assert restore_root_logger.level == logging.INFO

def test_setup_logging_to_file(restore_root_logger, tmp_path):
    log_file = tmp_path / "logs" / "engine.log"
    setup_logging("INFO", str(log_file))
    get_logger("config_template.test").info("written to file")
    for handler in restore_root_logger.handlers:
        handler.flush()

    content = log_file.read_text()
    assert "written to file" in content
    assert "config_template.test - INFO" in content

def test_default_format_fields():
    assert "%(name)s" in DEFAULT_FORMAT
    assert "%(levelname)s" in DEFAULT_FORMAT
