"""Tests for structured logging (invoicing_kernel/logging_config.py)."""

import contextvars
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from invoicing_kernel.exceptions import OverpaymentError
from invoicing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    """Each test configures its own handler; the suite default is restored after."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().strip().split("\n") if line]


class TestStructuredFormatter:
    def test_one_json_object_per_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"invoice_number": "INV-1"})
        logger.debug("filtered at INFO")

        records = _records(stream)
        assert [r["message"] for r in records] == ["first", "second"]
        assert records[0]["logger"] == "invoicing.test"
        assert records[1]["level"] == "WARNING"
        assert records[1]["invoice_number"] == "INV-1"
        assert all("ts" in r for r in records)

    def test_context_fields_merged(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(tenant_id="tenant-a", bulk_id="b-1"):
            get_logger("test").info("inside")

        record = _records(stream)[0]
        assert record["tenant_id"] == "tenant-a"
        assert record["bulk_id"] == "b-1"
        assert "invoice_id" not in record

    def test_decimal_and_uuid_serialized_as_strings(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("amounts", extra={"payment_id": uid, "amount": Decimal("10.50")})

        record = _records(stream)[0]
        assert record["payment_id"] == str(uid)
        assert record["amount"] == "10.50"

    def test_invoicing_error_fields_extracted(self):
        """Typed errors expose their code and data attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise OverpaymentError("inv-1", Decimal("1.00"), Decimal("0.00"), "AED")
        except OverpaymentError:
            get_logger("test").error("payment_failed", exc_info=True)

        record = _records(stream)[0]
        assert record["exc_type"] == "OverpaymentError"
        assert record["exc_code"] == "OVERPAYMENT"
        assert record["exc_invoice_id"] == "inv-1"
        assert record["exc_remaining"] == "0.00"
        assert "traceback" in record


class TestLogContext:
    def test_set_is_additive(self):
        LogContext.set(tenant_id="t")
        LogContext.set(actor_id="a")
        assert LogContext.get_all() == {"tenant_id": "t", "actor_id": "a"}

    def test_bind_restores_previous_value(self):
        LogContext.set(invoice_id="outer")
        with LogContext.bind(invoice_id="inner"):
            assert LogContext.get_all()["invoice_id"] == "inner"
        assert LogContext.get_all()["invoice_id"] == "outer"

    def test_bind_skips_none_and_stringifies(self):
        uid = uuid4()
        with LogContext.bind(invoice_id=uid, bulk_id=None):
            ctx = LogContext.get_all()
        assert ctx == {"invoice_id": str(uid)}
        assert LogContext.get_all() == {}

    def test_copied_context_reaches_worker_threads(self):
        """Worker threads see the submitting thread's fields only through copy_context."""
        with LogContext.bind(bulk_id="b-7"):
            with ThreadPoolExecutor(max_workers=2) as pool:
                copied = pool.submit(contextvars.copy_context().run, LogContext.get_all).result()
                bare = pool.submit(LogContext.get_all).result()
        assert copied == {"bulk_id": "b-7"}
        assert bare == {}


class TestConfigureLogging:
    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)

        handlers = logging.getLogger("invoicing").handlers
        assert h1 in handlers
        assert h2 not in handlers
        assert sum(isinstance(h.formatter, StructuredFormatter) for h in handlers) == 1

    def test_child_loggers_share_configuration(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("bulk.processor").debug("nested")

        record = _records(stream)[0]
        assert record["logger"] == "invoicing.bulk.processor"
