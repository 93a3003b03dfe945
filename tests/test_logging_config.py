"""Tests for logging setup and credential redaction."""

import json
import logging

import pytest

from cliptomic.utils.logging_config import JSONFormatter, PrivacyFilter, setup_logging


def make_record(msg, *args):
    return logging.LogRecord("cliptomic.test", logging.INFO, __file__, 1, msg, args, None)


def test_privacy_filter_redacts_keys_in_message_and_args():
    privacy = PrivacyFilter()

    record = make_record("Using key %s with header %s", "sk-or-v1-abcdef123456", "Bearer abc.def-123")
    assert privacy.filter(record) is True

    message = record.getMessage()
    assert "abcdef123456" not in message
    assert "sk-[REDACTED]" in message
    assert "Bearer [REDACTED]" in message


def test_privacy_filter_masks_home_directory():
    record = make_record("Database initialized: /home/alice/.config/Cliptomic/settings.db")
    PrivacyFilter().filter(record)
    assert "alice" not in record.getMessage()


def test_json_formatter_emits_one_object_per_record():
    record = make_record("Rewrite completed: %d characters", 42)
    data = json.loads(JSONFormatter().format(record))

    assert data["level"] == "INFO"
    assert data["logger"] == "cliptomic.test"
    assert data["message"] == "Rewrite completed: 42 characters"


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_setup_logging_writes_redacted_json_file(tmp_path, restore_root_logger):
    app_logger = setup_logging(log_dir=tmp_path / "logs", log_level="DEBUG", enable_console=False)

    logging.getLogger("cliptomic.test").info("api key is %s", "sk-or-v1-secretsecret")
    for handler in logging.getLogger().handlers:
        handler.flush()

    lines = app_logger.log_file.read_text(encoding="utf-8").splitlines()
    entry = json.loads(lines[-1])

    assert "secretsecret" not in entry["message"]
    assert app_logger.log_file.parent == tmp_path / "logs"
