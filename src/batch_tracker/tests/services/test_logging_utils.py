"""Tests for service operation logging."""

import logging

import pytest

from batch_tracker.services import adjustment_service, fifo_service
from batch_tracker.services.exceptions import InsufficientBatchStock, StockConsistencyError
from batch_tracker.services.logging_utils import get_service_logger, log_operation


class TestGetServiceLogger:
    def test_namespace(self):
        logger = get_service_logger("batch_tracker.services.fifo_service")
        assert logger.name == "batch_tracker.services.fifo_service"

    def test_plain_name(self):
        assert get_service_logger("reports").name == "batch_tracker.services.reports"


class TestLogOperation:
    def test_message_and_extra(self, caplog):
        logger = get_service_logger("test_module")
        with caplog.at_level(logging.INFO, logger="batch_tracker.services"):
            log_operation(logger, "consume_fifo", "success", product_id=3, quantity=8)

        record = caplog.records[-1]
        assert record.getMessage() == "consume_fifo: success (product_id=3, quantity=8)"
        assert record.operation == "consume_fifo"
        assert record.outcome == "success"
        assert record.product_id == 3

    def test_no_context(self, caplog):
        logger = get_service_logger("test_module")
        with caplog.at_level(logging.DEBUG, logger="batch_tracker.services"):
            log_operation(logger, "purge", "started", level=logging.DEBUG)
        assert caplog.records[-1].getMessage() == "purge: started"
        assert caplog.records[-1].levelno == logging.DEBUG


class TestServiceLogging:
    """Failures are logged before the exception propagates."""

    def test_insufficient_stock_warning(self, test_db, sample_product, make_batch, caplog):
        make_batch(sample_product.id, 2, 5)

        with caplog.at_level(logging.INFO, logger="batch_tracker.services"):
            with pytest.raises(InsufficientBatchStock):
                fifo_service.consume_fifo(sample_product.id, 3)

        record = [r for r in caplog.records if getattr(r, "outcome", None) == "insufficient_stock"][0]
        assert record.levelno == logging.WARNING
        assert record.name == "batch_tracker.services.fifo_service"
        assert record.available == 2

    def test_consistency_error_logged_at_error(self, test_db, sample_product, make_batch, caplog):
        make_batch(sample_product.id, 5, 5)
        adjustment_service.set_stock(sample_product.id, 1)

        with caplog.at_level(logging.INFO, logger="batch_tracker.services"):
            with pytest.raises(StockConsistencyError):
                fifo_service.consume_fifo(sample_product.id, 1)

        record = [r for r in caplog.records if getattr(r, "outcome", None) == "consistency_error"][0]
        assert record.levelno == logging.ERROR
        assert record.remedy == "reconcile_stock"

    def test_success_logged(self, test_db, sample_product, make_batch, caplog):
        make_batch(sample_product.id, 5, 5)

        with caplog.at_level(logging.INFO, logger="batch_tracker.services"):
            fifo_service.consume_fifo(sample_product.id, 2)

        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith("consume_fifo: success") for m in messages)
