"""
Tests for sensitive-data masking and logging setup
"""
import logging

from escolaflow.logging_config import SensitiveDataFilter, setup_logging


def _record(msg, *args):
    return logging.LogRecord("escolaflow.test", logging.INFO, __file__, 1, msg, args, None)


def test_phone_numbers_are_masked():
    record = _record("Sending WhatsApp to %s", "5511977770003")
    SensitiveDataFilter().filter(record)
    assert record.getMessage() == "Sending WhatsApp to 55*********03"


def test_api_keys_are_masked():
    record = _record("POST https://gemini/models/x:generateContent?key=abc123&alt=json")
    SensitiveDataFilter().filter(record)
    assert "abc123" not in record.getMessage()
    assert "key=***" in record.getMessage()


def test_identifiers_are_left_alone():
    message = "Occurrence 3f2a9c1e-0000-4b12-9a7e-123456789012 moved"
    record = _record(message)
    SensitiveDataFilter().filter(record)
    assert record.getMessage() == message


def test_setup_logging_is_idempotent():
    logger = setup_logging("debug")
    setup_logging("debug")
    ours = [h for h in logger.handlers if getattr(h, "_escolaflow", False)]
    assert len(ours) == 1
    assert logger.level == logging.DEBUG
