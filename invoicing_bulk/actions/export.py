"""
Bulk action: read-only export projection.

Each item yields one row; ``summarize`` folds the rows into per-currency
totals plus status and aging breakdowns.  Nothing is written per item; the
processor records a single INVOICES_EXPORTED entry for the call.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from typing import Any

from invoicing_kernel.domain.audit import AuditAction, AuditSeverity
from invoicing_kernel.domain.invoice import Invoice
from invoicing_kernel.domain.values import Money
from invoicing_kernel.repository.base import UnitOfWork
from invoicing_config.schema import InvoicingConfig
from invoicing_engines.aging import classify, days_overdue, is_overdue

from invoicing_bulk.actions.base import ActionContext
from invoicing_bulk.domain.types import BulkAction, BulkOperationRequest, ItemOutcome

_TOTALED = ("totalAmount", "totalPaid", "outstanding")


def export_row(invoice: Invoice, ctx: ActionContext) -> dict[str, Any]:
    overdue = is_overdue(invoice, ctx.as_of, ctx.config.overdue_grace_period_days)
    age = days_overdue(invoice.due_date, ctx.as_of) if overdue else 0
    return {
        "invoiceNumber": invoice.invoice_number,
        "customerName": invoice.customer_name,
        "currency": invoice.currency,
        "subtotal": invoice.subtotal,
        "taxAmount": invoice.tax_amount,
        "totalAmount": invoice.total_amount,
        "status": invoice.status.value,
        "issueDate": invoice.issue_date,
        "dueDate": invoice.due_date,
        "isOverdue": overdue,
        "daysOverdue": age,
        "agingBucket": classify(age).name,
        "totalPaid": invoice.total_paid,
        "outstanding": invoice.outstanding,
        "itemCount": len(invoice.line_items),
        "lastPaymentDate": invoice.last_payment_date,
    }


class ExportHandler:
    @property
    def action(self) -> BulkAction:
        return BulkAction.EXPORT

    @property
    def audit_action(self) -> AuditAction:
        return AuditAction.INVOICES_EXPORTED

    @property
    def audit_severity(self) -> AuditSeverity:
        return AuditSeverity.LOW

    def validate(self, request: BulkOperationRequest, config: InvoicingConfig) -> None:
        return None

    def execute(self, uow: UnitOfWork, invoice_id: str, ctx: ActionContext) -> dict[str, Any]:
        invoice = uow.get_invoice(invoice_id, ctx.request_context.tenant_id, lock=False)
        return export_row(invoice, ctx)

    def summarize(
        self, outcomes: Sequence[ItemOutcome], ctx: ActionContext
    ) -> dict[str, Any] | None:
        rows = [o.detail for o in outcomes if o.succeeded]
        currencies: dict[str, dict[str, Money]] = {}
        for row in rows:
            code = row["currency"]
            totals = currencies.setdefault(code, {key: Money.zero(code) for key in _TOTALED})
            for key in _TOTALED:
                totals[key] += Money.of(row[key], code)

        return {
            "invoiceCount": len(rows),
            "byCurrency": {
                code: {key: money.amount for key, money in totals.items()}
                for code, totals in currencies.items()
            },
            "statusBreakdown": dict(Counter(row["status"] for row in rows)),
            "agingBreakdown": dict(Counter(row["agingBucket"] for row in rows)),
            "overdueCount": sum(1 for row in rows if row["isOverdue"]),
            "asOf": ctx.as_of,
        }
