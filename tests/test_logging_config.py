"""
Tests for structured logging helpers.
"""
import json
import logging

import pytest

from erp_desk.exceptions import InvoiceNotFoundError
from erp_desk.logging_config import (
    JSONFormatter, get_logger, log_error, log_reconciliation, setup_logging,
)


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def captured():
    logger = setup_logging(level="DEBUG")
    handler = _Capture()
    logger.addHandler(handler)
    yield handler
    logger.removeHandler(handler)


class TestLogging:

    def test_get_logger_names(self):
        assert get_logger().name == "erp_desk"
        assert get_logger("api").name == "erp_desk.api"

    def test_json_formatter_merges_extra_data(self, captured):
        log_reconciliation(get_logger("test"), "INV-2024-0001", "sent", "paid", "1000.00", "0.00")

        data = json.loads(JSONFormatter().format(captured.records[-1]))

        assert data["level"] == "INFO"
        assert data["logger"] == "erp_desk.test"
        assert data["event"] == "invoice_reconciled"
        assert data["new_status"] == "paid"

    def test_log_error_carries_code(self, captured):
        log_error(get_logger("test"), InvoiceNotFoundError("INV-9"), context="lookup")

        record = captured.records[-1]
        assert record.levelno == logging.ERROR
        assert record.extra_data["error_code"] == "INVOICE_NOT_FOUND"
        assert record.extra_data["context"] == "lookup"

    def test_log_file(self, tmp_path):
        path = tmp_path / "logs" / "erp.log"
        logger = setup_logging(level="INFO", log_file=str(path), json_format=True)
        try:
            logger.info("hello")
            for handler in logger.handlers:
                handler.flush()
            assert json.loads(path.read_text().splitlines()[-1])["message"] == "hello"
        finally:
            for handler in list(logger.handlers):
                handler.close()
            setup_logging(level="INFO")
