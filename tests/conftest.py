"""
Pytest fixtures for the invoicing test suite.

Provides:
- A file-backed SQLite database per test (tables created fresh)
- Repository, configuration and deterministic clock fixtures
- Service and bulk processor fixtures wired to the same repository
- Invoice factories for common scenarios

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL) instead of
  the per-test SQLite file.  Tables are dropped after each test.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from invoicing_bulk import BulkOperationProcessor
from invoicing_config import get_default_config
from invoicing_kernel.db.engine import create_engine_from_url, create_tables, drop_tables
from invoicing_kernel.domain.clock import DeterministicClock
from invoicing_kernel.domain.context import RequestContext
from invoicing_kernel.domain.invoice import (
    InvoiceStatus,
    LineItem,
    PaymentMethod,
    PaymentRequest,
)
from invoicing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from invoicing_kernel.repository import SqlInvoiceRepository
from invoicing_services import (
    InvoiceDraft,
    InvoiceService,
    InvoiceStatusService,
    PaymentReconciliationService,
    RecordingNotificationGateway,
)

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"

# Friday 2024-03-15 09:00 UTC
START = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture invoicing logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, payment_service):
            payment_service.apply_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("invoicing")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'invoicing.db'}"
    engine = create_engine_from_url(url, pool_size=10, max_overflow=10)
    create_tables(engine)
    yield engine
    if not url.startswith("sqlite"):
        drop_tables(engine)
    engine.dispose()


@pytest.fixture
def clock():
    return DeterministicClock(START)


@pytest.fixture
def config():
    return get_default_config()


@pytest.fixture
def repository(engine, clock):
    return SqlInvoiceRepository(engine, clock=clock)


@pytest.fixture
def ctx():
    return RequestContext(tenant_id=TENANT, actor_id="user-1", actor_role="FINANCE")


@pytest.fixture
def other_ctx():
    return RequestContext(tenant_id=OTHER_TENANT, actor_id="user-9", actor_role="ADMIN")


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def gateway():
    return RecordingNotificationGateway()


@pytest.fixture
def invoice_service(repository, config, clock):
    return InvoiceService(repository, config=config, clock=clock)


@pytest.fixture
def payment_service(repository, config, clock):
    return PaymentReconciliationService(repository, config=config, clock=clock)


@pytest.fixture
def processor(repository, config, clock, gateway):
    return BulkOperationProcessor(repository, config=config, clock=clock, gateway=gateway)


@pytest.fixture
def status_service(repository, config, clock, processor):
    return InvoiceStatusService(repository, config=config, clock=clock, bulk_processor=processor)


# =============================================================================
# Factories
# =============================================================================


def consulting_lines(net: str = "1000.00", rate: str = "0") -> list[LineItem]:
    return [LineItem("Consulting", Decimal("1"), Decimal(net), Decimal(rate))]


def cash(amount: str, on: date | None = None) -> PaymentRequest:
    return PaymentRequest(
        amount=Decimal(amount),
        method=PaymentMethod.CASH,
        payment_date=on or START.date(),
    )


@pytest.fixture
def make_invoice(invoice_service, ctx):
    """
    Create an invoice with a single line.

    ``total`` is the net amount (tax rate 0 unless given).  ``customer_email``
    defaults to a valid address so reminders can be queued.
    """
    counter = iter(range(1, 10_000))

    def _make(
        total: str = "1000.00",
        *,
        rate: str = "0",
        currency: str = "AED",
        due_date: date | None = None,
        customer_email: str | None = "billing@example.com",
        context: RequestContext | None = None,
    ):
        number = f"INV-{next(counter):05d}"
        return invoice_service.create_invoice(
            context or ctx,
            InvoiceDraft(
                invoice_number=number,
                customer_name="Acme Trading LLC",
                line_items=consulting_lines(total, rate),
                currency=currency,
                due_date=due_date,
                customer_email=customer_email,
            ),
        )

    return _make


@pytest.fixture
def sent_invoice(make_invoice, status_service, ctx):
    """Create an invoice and move it to SENT."""

    def _make(total: str = "1000.00", **kwargs):
        invoice = make_invoice(total, **kwargs)
        return status_service.change_status(ctx, invoice.id, InvoiceStatus.SENT).invoice

    return _make
