"""Tests for the logger factory."""

import logging

from cvtailor.utils.logging import LOG_FORMAT, get_logger, set_log_level


class TestGetLogger:
    """Handler and level setup."""

    def test_single_stdout_handler(self):
        first = get_logger("cvtailor.tests.single")
        second = get_logger("cvtailor.tests.single")

        assert first is second
        assert len(first.handlers) == 1
        assert first.handlers[0].formatter._fmt == LOG_FORMAT

    def test_level_argument_and_environment(self, monkeypatch):
        assert get_logger("cvtailor.tests.debug", level="debug").level == logging.DEBUG

        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        assert get_logger("cvtailor.tests.env").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        assert get_logger("cvtailor.tests.unknown", level="chatty").level == logging.INFO


class TestSetLogLevel:
    """Package-wide level changes."""

    def test_only_package_loggers_change(self):
        ours = get_logger("cvtailor.tests.package", level="INFO")
        theirs = get_logger("elsewhere.tests", level="INFO")

        applied = set_log_level("ERROR")
        try:
            assert applied == logging.ERROR
            assert ours.level == logging.ERROR
            assert ours.handlers[0].level == logging.ERROR
            assert theirs.level == logging.INFO
        finally:
            set_log_level("INFO")
