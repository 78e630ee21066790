from __future__ import annotations

import json
import logging
import sys
from io import StringIO
from unittest.mock import patch

import livestock_import.logging.init as log_init
from livestock_import.logging.error_log import ErrorLogBuffer
from livestock_import.logging.init import (
    LOGGER_NAME,
    SUMMARY_LEVEL,
    LabeledFormatter,
    get_logger,
    log_summary,
    setup_logging,
)
from livestock_import.models.error_record import ErrorRecord


def _capture(logger: logging.Logger) -> StringIO:
    captured = StringIO()
    for handler in logger.handlers:
        handler.setStream(captured)
    return captured


def test_setup_logging_creates_logger_with_labeled_formatter():
    logger = setup_logging()

    assert logger.name == LOGGER_NAME
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, LabeledFormatter)
    assert logger.propagate is False


def test_logging_labeled_prefixes():
    logger = setup_logging()
    captured = _capture(logger)

    logger.info("Test info message")
    logger.warning("Test warning message")
    logger.error("Test error message")
    logger.log(SUMMARY_LEVEL, "Test summary message")
    logger.debug("hidden without --debug")

    lines = captured.getvalue().strip().split("\n")
    assert lines == [
        "INFO Test info message",
        "WARN Test warning message",
        "ERROR Test error message",
        "SUMMARY Test summary message",
    ]


def test_module_loggers_propagate_to_application_logger():
    logger = setup_logging()
    captured = _capture(logger)

    logging.getLogger("livestock_import.services.importer").warning("file skipped")

    assert captured.getvalue() == "WARN file skipped\n"


def test_debug_flag_applied_after_default_setup():
    logger = setup_logging()
    again = setup_logging(debug=True)

    assert again is logger
    assert logger.level == logging.DEBUG
    assert logger.handlers[0].level == logging.DEBUG
    assert len(logger.handlers) == 1


def test_get_logger_returns_configured_logger():
    setup_logger = setup_logging()
    assert get_logger() is setup_logger


def test_get_logger_sets_up_on_first_use():
    log_init.reset_logging()
    assert get_logger().name == LOGGER_NAME


def test_log_summary_convenience_function():
    logger = setup_logging()
    captured = _capture(logger)

    log_summary("files=2/2 success=2 failed=0 rows=150")

    assert captured.getvalue().strip() == "SUMMARY files=2/2 success=2 failed=0 rows=150"
    assert logging.getLevelName(SUMMARY_LEVEL) == "SUMMARY"


def test_debug_records_include_traceback():
    formatter = LabeledFormatter()
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord("x", logging.DEBUG, __file__, 1, "failed", None, sys.exc_info())
    text = formatter.format(record)
    assert text.startswith("DEBUG failed\n")
    assert "ValueError: boom" in text


def test_error_log_buffer_flush_writes_json_lines(tmp_path):
    buffer = ErrorLogBuffer(tmp_path / "logs")
    assert buffer.flush() is None
    assert not (tmp_path / "logs").exists()

    buffer.append(ErrorRecord.create("a.csv", "offtakes", -1, "MALFORMED_INPUT", "no data rows"))
    buffer.append(ErrorRecord.create("<RUN>", "offtakes", -1, "PERSISTENCE_ERROR", "chunk 2 failed"))
    path = buffer.flush()

    assert path is not None
    assert path.parent == tmp_path / "logs"
    assert path.name.startswith("errors-") and path.suffix == ".log"
    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["error_type"] for line in lines] == ["MALFORMED_INPUT", "PERSISTENCE_ERROR"]
    assert buffer.records == ()


def test_error_log_is_separate_from_console(tmp_path):
    logger = setup_logging()
    captured = _capture(logger)
    buffer = ErrorLogBuffer(tmp_path)
    buffer.append(ErrorRecord.create("a.csv", "offtakes", 3, "X", "msg"))
    with patch("sys.stdout.isatty", return_value=False):
        buffer.flush()
    assert captured.getvalue() == ""


def test_error_log_buffer_counts_by_type(tmp_path):
    buffer = ErrorLogBuffer(tmp_path)
    for error_type in ("MALFORMED_INPUT_ERROR", "MALFORMED_INPUT_ERROR", "PERSISTENCE_ERROR"):
        buffer.append(ErrorRecord.create("a.csv", "offtakes", -1, error_type, "m"))
    assert buffer.counts_by_type() == {"MALFORMED_INPUT_ERROR": 2, "PERSISTENCE_ERROR": 1}
    buffer.flush()
    assert buffer.counts_by_type() == {}
