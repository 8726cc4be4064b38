"""
Unit-of-work atomicity tests.

Covers:
- Commit on normal exit
- Rollback on business errors, deadline overruns and driver failures
- Typed error translation (StaleDataError, SQLAlchemyError)
"""

import time

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from invoicing_kernel.domain.audit import AuditAction, AuditEntry
from invoicing_kernel.domain.invoice import InvoiceStatus
from invoicing_kernel.exceptions import (
    ConcurrencyConflict,
    InfrastructureError,
    InvalidTransitionError,
    UnitTimeoutError,
)
from tests.conftest import TENANT


def _count(repository):
    with repository.unit_of_work() as uow:
        return len(uow.list_invoices(TENANT))


class TestCommitAndRollback:
    def test_audit_and_mutation_roll_back_together(self, repository, make_invoice, ctx):
        invoice = make_invoice()

        with pytest.raises(InvalidTransitionError):
            with repository.unit_of_work() as uow:
                uow.update_status(invoice.id, TENANT, InvoiceStatus.SENT, ctx.actor_id)
                uow.append_audit(TENANT, AuditEntry(
                    entity_type="Invoice",
                    entity_id=str(invoice.id),
                    action=AuditAction.INVOICE_STATUS_CHANGED,
                    actor_id=ctx.actor_id,
                ))
                raise InvalidTransitionError("DRAFT", "SENT", ())

        with repository.unit_of_work() as uow:
            assert uow.get_invoice(invoice.id, TENANT).status == InvoiceStatus.DRAFT
            assert len(uow.audit.trace(TENANT, "Invoice", invoice.id).entries) == 1

    def test_unexpected_exception_rolls_back(self, repository, make_invoice):
        make_invoice()
        with pytest.raises(RuntimeError):
            with repository.unit_of_work() as uow:
                uow.delete_invoice(uow.list_invoices(TENANT)[0].id, TENANT)
                raise RuntimeError("boom")
        assert _count(repository) == 1


class TestDeadline:
    def test_overrun_rolls_back(self, repository, make_invoice, ctx):
        invoice = make_invoice()

        with pytest.raises(UnitTimeoutError) as exc_info:
            with repository.unit_of_work(timeout=0.01) as uow:
                uow.update_status(invoice.id, TENANT, InvoiceStatus.SENT, ctx.actor_id)
                time.sleep(0.05)

        assert exc_info.value.code == "TIMEOUT"
        assert str(exc_info.value) == "timeout"
        with repository.unit_of_work() as uow:
            assert uow.get_invoice(invoice.id, TENANT).status == InvoiceStatus.DRAFT

    def test_deadline_checked_before_each_read(self, repository, make_invoice):
        invoice = make_invoice()
        with pytest.raises(UnitTimeoutError):
            with repository.unit_of_work(timeout=0.01) as uow:
                time.sleep(0.05)
                uow.get_invoice(invoice.id, TENANT)

    def test_within_deadline_commits(self, repository, make_invoice, ctx):
        invoice = make_invoice()
        with repository.unit_of_work(timeout=30) as uow:
            uow.update_status(invoice.id, TENANT, InvoiceStatus.SENT, ctx.actor_id)
        with repository.unit_of_work() as uow:
            assert uow.get_invoice(invoice.id, TENANT).status == InvoiceStatus.SENT


class TestErrorTranslation:
    def test_stale_data_becomes_concurrency_conflict(self, repository, make_invoice):
        invoice = make_invoice()
        with pytest.raises(ConcurrencyConflict) as exc_info:
            with repository.unit_of_work() as uow:
                uow.get_invoice(invoice.id, TENANT)
                raise StaleDataError("version mismatch")
        assert exc_info.value.entity_id == str(invoice.id)

    def test_driver_failure_becomes_infrastructure_error(self, repository):
        with pytest.raises(InfrastructureError) as exc_info:
            with repository.unit_of_work():
                raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))
        assert str(exc_info.value) == "Storage failure during unit_of_work"
        assert "disk" not in str(exc_info.value)
