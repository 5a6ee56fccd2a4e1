"""Unit tests for the structured logger."""

import json
import logging

import pytest

from util_logger import ComponentType, JSONFormatter, LoggerFactory, LogLevel, level_for, log_exceptions


class TestLoggerFactory:
    """Tests for LoggerFactory and JSONFormatter."""

    def test_component_dimensions_are_attached(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = LoggerFactory.create_logger(ComponentType.SERVICE, "UnitTestService")

        with caplog.at_level(logging.INFO, logger="service.UnitTestService"):
            logger.info("hello", extra={'custom_dimensions': {'endpoint': 'query'}})

        record = caplog.records[-1]
        assert record.custom_dimensions == {
            'component_type': 'service',
            'component_name': 'UnitTestService',
            'endpoint': 'query'
        }

    def test_json_formatter(self) -> None:
        record = logging.LogRecord("repository.X", logging.WARNING, __file__, 10, "slow %s", ("query",), None)
        record.custom_dimensions = {'row_count': 3}

        payload = json.loads(JSONFormatter().format(record))

        assert payload['level'] == 'WARNING'
        assert payload['message'] == 'slow query'
        assert payload['customDimensions'] == {'row_count': 3}


class TestLogExceptions:
    """Tests for the log_exceptions decorator."""

    def test_exception_is_logged_and_reraised(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = LoggerFactory.create_logger(ComponentType.TRIGGER, "UnitTestTrigger")

        @log_exceptions(logger=logger)
        def explode():
            raise ValueError("bad value")

        with caplog.at_level(logging.ERROR, logger="trigger.UnitTestTrigger"):
            with pytest.raises(ValueError):
                explode()

        record = caplog.records[-1]
        assert record.getMessage() == "Exception in explode"
        assert record.custom_dimensions['exception_type'] == 'ValueError'

    def test_return_value_passes_through(self) -> None:
        @log_exceptions(ComponentType.SERVICE, "UnitTestService")
        def add(a, b):
            return a + b

        assert add(2, 3) == 5


class TestLevels:
    """Tests for environment-driven levels."""

    def test_layer_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DEBUG_LOGGING", raising=False)
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        monkeypatch.setenv("LOG_LEVEL_REPOSITORY", "debug")
        monkeypatch.delenv("LOG_LEVEL_TRIGGER", raising=False)

        assert level_for(ComponentType.REPOSITORY) == LogLevel.DEBUG
        assert level_for(ComponentType.TRIGGER) == LogLevel.WARNING

    def test_debug_logging_shorthand(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LOG_LEVEL_SERVICE", raising=False)
        monkeypatch.setenv("DEBUG_LOGGING", "true")

        assert level_for(ComponentType.SERVICE) == LogLevel.DEBUG

    def test_unknown_level_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DEBUG_LOGGING", raising=False)
        monkeypatch.delenv("LOG_LEVEL_TRIGGER", raising=False)
        monkeypatch.setenv("LOG_LEVEL", "chatty")

        assert level_for(ComponentType.TRIGGER) == LogLevel.INFO
