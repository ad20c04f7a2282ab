"""
Tests for the structured logger factory.
"""

import io
import json
import logging
import os
from unittest.mock import patch

from pythonjsonlogger import jsonlogger

from src.utils import logging as qlogging


def _capture(logger: logging.Logger) -> io.StringIO:
    stream = io.StringIO()
    logger.handlers[0].setStream(stream)
    return stream


def _fresh_logger(name, env):
    qlogging._LOGGERS.pop(name, None)
    logging.getLogger(name).handlers.clear()
    with patch.dict(os.environ, env):
        return qlogging.get_logger(name)


class TestGetLogger:
    """Logger construction and formatting."""

    def test_cached_per_name(self):
        logger = _fresh_logger("qstudy.test.cache", {"LOG_FORMAT": "structured"})
        assert qlogging.get_logger("qstudy.test.cache") is logger
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_structured_format_fills_missing_fields(self):
        logger = _fresh_logger("qstudy.test.structured", {"LOG_FORMAT": "structured", "LOG_LEVEL": "INFO"})
        stream = _capture(logger)
        logger.info("advanced", extra={"session_id": "s1"})
        line = stream.getvalue()
        assert "msg=advanced" in line
        assert "session_id=s1" in line
        assert "study_id= " in line

    def test_json_format(self):
        logger = _fresh_logger("qstudy.test.json", {"LOG_FORMAT": "json", "LOG_LEVEL": "INFO"})
        assert isinstance(logger.handlers[0].formatter, jsonlogger.JsonFormatter)
        stream = _capture(logger)
        logger.warning("rejected", extra={"study_id": "study-1", "step": "q-sort"})
        record = json.loads(stream.getvalue())
        assert record["message"] == "rejected"
        assert record["study_id"] == "study-1"
        assert record["step"] == "q-sort"
        assert record["session_id"] == ""

    def test_level_from_env(self):
        logger = _fresh_logger("qstudy.test.level", {"LOG_LEVEL": "ERROR"})
        assert logger.level == logging.ERROR

    def test_unknown_level_falls_back_to_info(self):
        logger = _fresh_logger("qstudy.test.badlevel", {"LOG_LEVEL": "chatty"})
        assert logger.level == logging.INFO


class TestFormatters:
    """Formatter selection and participant context defaults."""

    def test_explicit_format_overrides_env(self):
        with patch.dict(os.environ, {"LOG_FORMAT": "structured"}):
            assert isinstance(qlogging.build_formatter("json"), jsonlogger.JsonFormatter)
            assert not isinstance(qlogging.build_formatter(), jsonlogger.JsonFormatter)

    def test_context_filter_keeps_given_values(self):
        record = logging.LogRecord("qstudy", logging.INFO, __file__, 1, "msg", None, None)
        record.step = "q-sort"
        assert qlogging.ParticipantContextFilter().filter(record) is True
        assert record.step == "q-sort"
        assert record.session_id == ""
        assert record.study_id == ""
