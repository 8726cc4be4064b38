"""
Bulk action handler tests.

Covers:
- Handler registry exhaustiveness and duplicate registration
- Bulk delete with per-item eligibility
- Reminder queueing through the notification gateway, and gateway failures
- Export rows and summary, read without row locks
"""

from datetime import date
from decimal import Decimal

import pytest

from invoicing_bulk import (
    BulkAction,
    BulkOperationProcessor,
    BulkOperationRequest,
    HandlerRegistry,
    default_registry,
)
from invoicing_bulk.actions import (
    ActionContext,
    DeleteHandler,
    ExportHandler,
    UpdateStatusHandler,
)
from invoicing_kernel.domain.audit import AuditAction, AuditQuery
from invoicing_kernel.domain.invoice import InvoiceStatus
from invoicing_kernel.exceptions import MalformedBulkRequestError
from tests.conftest import TENANT, cash


class FailingGateway:
    def submit(self, intent):
        raise ConnectionError("smtp down")


class LockRecordingUnit:
    def __init__(self, uow):
        self._uow = uow
        self.locks = []

    def get_invoice(self, invoice_id, tenant_id, *, lock=True):
        self.locks.append(lock)
        return self._uow.get_invoice(invoice_id, tenant_id, lock=lock)


class TestHandlerRegistry:
    def test_default_registry_covers_every_action(self):
        registry = default_registry()
        registry.assert_exhaustive()
        assert len(registry) == len(BulkAction)

    def test_missing_handler_detected(self):
        registry = HandlerRegistry([UpdateStatusHandler(), DeleteHandler()])
        with pytest.raises(RuntimeError, match="export"):
            registry.assert_exhaustive()

    def test_duplicate_registration_rejected(self):
        registry = HandlerRegistry([ExportHandler()])
        with pytest.raises(ValueError):
            registry.register(ExportHandler())

    def test_unknown_action_lookup(self):
        with pytest.raises(KeyError):
            HandlerRegistry().get(BulkAction.EXPORT)


class TestBulkDelete:
    def test_only_eligible_invoices_deleted(
        self, processor, make_invoice, sent_invoice, invoice_service, ctx
    ):
        draft = make_invoice()
        sent = sent_invoice()
        request = BulkOperationRequest(action=BulkAction.DELETE, invoice_ids=[draft.id, sent.id])

        result = processor.execute(ctx, request)

        assert result.details[0].succeeded
        assert result.details[0].detail["deleted"] is True
        assert result.details[1].code == "DELETION_NOT_ALLOWED"
        assert "only DRAFT invoices" in result.details[1].reason
        assert [inv.id for inv in invoice_service.list_invoices(ctx)] == [sent.id]

    def test_bulk_delete_audited_high(self, processor, make_invoice, repository, ctx):
        invoice = make_invoice()
        result = processor.execute(
            ctx, BulkOperationRequest(action="delete", invoice_ids=[invoice.id])
        )
        with repository.unit_of_work() as uow:
            bulk = uow.audit.query(TENANT, AuditQuery(entity_type="BulkOperation"))[0]
            deleted = uow.audit.query(TENANT, AuditQuery(actions=(AuditAction.INVOICE_DELETED,)))[0]
        assert bulk.severity == "HIGH"
        assert deleted.metadata["bulk_id"] == result.bulk_id


class TestBulkReminders:
    def reminder(self, ids, template_id="overdue_notice"):
        return BulkOperationRequest(
            action=BulkAction.QUEUE_REMINDER,
            invoice_ids=[str(i) for i in ids],
            template_id=template_id,
        )

    def test_intents_rendered_and_submitted(self, processor, sent_invoice, gateway, clock, ctx):
        invoice = sent_invoice("1000.00", due_date=date(2024, 3, 20))
        clock.advance_days(10)

        result = processor.execute(ctx, self.reminder([invoice.id]))

        assert result.success_count == 1
        intent = gateway.intents[0]
        assert intent.recipient == "billing@example.com"
        assert intent.subject == f"Overdue: invoice {invoice.invoice_number}"
        assert "AED 1,000.00" in intent.body
        assert "5 days past due" in intent.body

    def test_paid_invoice_blocked(self, processor, sent_invoice, payment_service, gateway, ctx):
        invoice = sent_invoice()
        payment_service.apply_payment(ctx, invoice.id, cash("1000.00"))

        result = processor.execute(ctx, self.reminder([invoice.id]))

        assert result.details[0].code == "REMINDER_NOT_ALLOWED"
        assert gateway.intents == ()

    def test_missing_email_fails_item(self, processor, sent_invoice, gateway, ctx):
        invoice = sent_invoice(customer_email=None)
        result = processor.execute(ctx, self.reminder([invoice.id]))
        assert result.details[0].code == "VALIDATION_ERROR"
        assert gateway.intents == ()

    def test_reminder_counted_on_invoice(self, processor, sent_invoice, invoice_service, ctx):
        invoice = sent_invoice()
        processor.execute(ctx, self.reminder([invoice.id], "payment_reminder"))
        processor.execute(ctx, self.reminder([invoice.id], "payment_reminder"))
        assert invoice_service.get_invoice(ctx, invoice.id).reminder_count == 2

    @pytest.mark.parametrize("template_id", [None, "collections_letter"])
    def test_unknown_or_missing_template_is_malformed(self, processor, sent_invoice, ctx, template_id):
        invoice = sent_invoice()
        with pytest.raises(MalformedBulkRequestError) as exc_info:
            processor.execute(ctx, self.reminder([invoice.id], template_id))
        assert exc_info.value.field == "templateId"

    def test_gateway_failure_fails_each_item(
        self, repository, config, clock, sent_invoice, invoice_service, ctx
    ):
        processor = BulkOperationProcessor(
            repository, config=config, clock=clock, gateway=FailingGateway()
        )
        invoices = [sent_invoice() for _ in range(3)]

        result = processor.execute(ctx, self.reminder([inv.id for inv in invoices]))

        assert result.failed_count == 3
        assert {d.code for d in result.details} == {"NOTIFICATION_FAILED"}
        assert "smtp down" not in result.details[0].reason
        for inv in invoices:
            assert invoice_service.get_invoice(ctx, inv.id).reminder_count == 0
        with repository.unit_of_work() as uow:
            assert uow.audit.query(TENANT, AuditQuery(actions=(AuditAction.REMINDER_QUEUED,))) == []
            bulk = uow.audit.query(TENANT, AuditQuery(entity_type="BulkOperation"))
        assert len(bulk) == 1
        assert len(bulk[0].metadata["failed_ids"]) == 3


class TestBulkExport:
    def test_rows_and_summary(self, processor, sent_invoice, make_invoice, payment_service, clock, ctx):
        late = sent_invoice("1000.00", due_date=date(2024, 3, 20))
        paid = sent_invoice("500.00")
        draft = make_invoice("200.00", currency="USD")
        payment_service.apply_payment(ctx, paid.id, cash("500.00"))
        clock.advance_days(20)

        result = processor.execute(ctx, BulkOperationRequest(
            action=BulkAction.EXPORT, invoice_ids=[late.id, paid.id, draft.id]
        ))

        row = result.details[0].detail
        assert row["isOverdue"] is True
        assert row["daysOverdue"] == 15
        assert row["agingBucket"] == "1-30"
        assert result.details[1].detail["outstanding"] == Decimal("0.00")

        summary = result.summary
        assert summary["invoiceCount"] == 3
        assert summary["overdueCount"] == 1
        assert summary["byCurrency"]["AED"]["totalAmount"] == Decimal("1500.00")
        assert summary["byCurrency"]["AED"]["totalPaid"] == Decimal("500.00")
        assert summary["byCurrency"]["USD"]["outstanding"] == Decimal("200.00")
        assert summary["statusBreakdown"] == {"SENT": 1, "PAID": 1, "DRAFT": 1}

    def test_export_writes_single_audit_record(self, processor, sent_invoice, repository, ctx):
        invoice = sent_invoice()
        with repository.unit_of_work() as uow:
            before = len(uow.audit.query(TENANT))

        processor.execute(ctx, BulkOperationRequest(action="export", invoice_ids=[invoice.id]))

        with repository.unit_of_work() as uow:
            records = uow.audit.query(TENANT)
        assert len(records) == before + 1
        assert records[0].action == AuditAction.INVOICES_EXPORTED.value
        assert records[0].severity == "LOW"

    def test_export_reads_without_row_lock(
        self, repository, config, clock, gateway, sent_invoice, ctx
    ):
        invoice = sent_invoice()
        request = BulkOperationRequest(action="export", invoice_ids=[invoice.id])
        action_ctx = ActionContext(
            request_context=ctx,
            request=request,
            config=config,
            clock=clock,
            gateway=gateway,
            bulk_id="bulk-1",
            as_of=clock.today(),
        )

        with repository.unit_of_work() as uow:
            recorder = LockRecordingUnit(uow)
            row = ExportHandler().execute(recorder, str(invoice.id), action_ctx)

        assert recorder.locks == [False]
        assert row["invoiceNumber"] == invoice.invoice_number

    def test_to_dict_serializes_decimals_and_dates(self, processor, sent_invoice, ctx):
        invoice = sent_invoice()
        out = processor.execute(
            ctx, BulkOperationRequest(action="export", invoice_ids=[invoice.id])
        ).to_dict()
        assert out["details"][0]["detail"]["totalAmount"] == "1000.00"
        assert out["summary"]["asOf"] == "2024-03-15"
