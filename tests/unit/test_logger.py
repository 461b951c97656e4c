"""
Unit tests for structured logging utility (paratransit_client/utils/logger.py)

Tests covering:
- JSON log formatting with required fields
- Identifier masking
- Redaction of sensitive context keys
- Log operation decorator
"""

import json
import logging
from datetime import datetime
from io import StringIO

import pytest

from paratransit_client.utils.logger import (
    REDACTED,
    StructuredLogger,
    get_logger,
    log_operation,
    mask_identifier,
    redact_context,
)


@pytest.fixture
def logger_with_handler():
    """Logger writing to a string stream."""
    logger = StructuredLogger("structured_logger_under_test")
    logger.logger.handlers.clear()

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.logger.addHandler(handler)
    logger.logger.setLevel(logging.DEBUG)
    logger.logger.propagate = False

    return logger, stream


class TestMaskIdentifier:
    """Tests for identifier masking."""

    def test_keeps_last_four_characters(self):
        assert mask_identifier("user-1234567") == "****4567"

    def test_short_value_fully_masked(self):
        assert mask_identifier("ab") == "****"
        assert mask_identifier("abcd") == "****"

    def test_empty_and_none(self):
        assert mask_identifier("") == "unknown"
        assert mask_identifier(None) == "unknown"

    def test_custom_visible_length(self):
        assert mask_identifier("abcdefgh", visible=2) == "****gh"


class TestRedactContext:
    """Tests for context redaction."""

    def test_sensitive_keys_replaced(self):
        context = {
            "password": "hunter2",
            "session_token": "ASP.NET_SessionId=abc",
            "pickup_address": "123 Main St",
            "booking_id": "555",
        }

        cleaned = redact_context(context)

        assert cleaned["password"] == REDACTED
        assert cleaned["session_token"] == REDACTED
        assert cleaned["pickup_address"] == REDACTED
        assert cleaned["booking_id"] == "555"

    def test_nested_dicts_are_redacted(self):
        cleaned = redact_context({"request": {"Cookie": "a=1", "method": "PassGetClientTrips"}})

        assert cleaned["request"]["Cookie"] == REDACTED
        assert cleaned["request"]["method"] == "PassGetClientTrips"

    def test_original_not_modified(self):
        context = {"password": "hunter2"}
        redact_context(context)
        assert context["password"] == "hunter2"

    def test_empty_context_passthrough(self):
        assert redact_context(None) is None
        assert redact_context({}) == {}


class TestStructuredLogger:
    """Tests for StructuredLogger class."""

    def test_format_log_basic_fields(self, logger_with_handler):
        logger, _ = logger_with_handler

        parsed = json.loads(logger._format_log("INFO", "Test message"))

        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Test message"
        assert parsed["timestamp"].endswith("Z")
        datetime.fromisoformat(parsed["timestamp"].replace("Z", "+00:00"))

    def test_format_log_all_fields(self, logger_with_handler):
        logger, _ = logger_with_handler

        parsed = json.loads(
            logger._format_log(
                "ERROR",
                "Something went wrong",
                operation="book_trip",
                context={"draft_id": "123"},
                duration_ms=45.678,
                error="BookingConflictError",
            )
        )

        assert parsed["operation"] == "book_trip"
        assert parsed["context"] == {"draft_id": "123"}
        assert parsed["duration_ms"] == 45.68
        assert parsed["error"] == "BookingConflictError"

    def test_context_is_redacted_in_output(self, logger_with_handler):
        logger, stream = logger_with_handler

        logger.info("Login", operation="login", context={"password": "hunter2", "step": 2})

        output = stream.getvalue()
        assert "hunter2" not in output
        parsed = json.loads(output.strip())
        assert parsed["context"]["password"] == REDACTED
        assert parsed["context"]["step"] == 2

    def test_level_methods_write_json_lines(self, logger_with_handler):
        logger, stream = logger_with_handler

        logger.debug("d")
        logger.info("i")
        logger.warning("w")
        logger.error("e")

        levels = [json.loads(line)["level"] for line in stream.getvalue().strip().splitlines()]
        assert levels == ["DEBUG", "INFO", "WARNING", "ERROR"]


class TestLogOperationDecorator:
    """Tests for log_operation decorator."""

    def test_returns_function_result(self):
        @log_operation("test_op")
        def add(a, b):
            return a + b

        assert add(2, 3) == 5

    def test_reraises_exceptions(self):
        @log_operation("failing_op")
        def explode():
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            explode()

    def test_arguments_never_logged(self, caplog):
        @log_operation("connect_account")
        def connect(owner_id, username, password):
            return True

        with caplog.at_level(logging.DEBUG):
            connect(owner_id="user-1234567", username="rider", password="hunter2")

        assert "Completed connect_account" in caplog.text
        assert "****4567" in caplog.text
        assert "hunter2" not in caplog.text
        assert "rider" not in caplog.text
        assert "user-1234567" not in caplog.text

    def test_preserves_function_name(self):
        @log_operation("named")
        def my_function():
            return None

        assert my_function.__name__ == "my_function"


def test_get_logger_returns_structured_logger():
    logger = get_logger("paratransit_client.test")
    assert isinstance(logger, StructuredLogger)
    assert logger.logger.name == "paratransit_client.test"
