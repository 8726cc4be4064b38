"""
InvoiceService -- invoice creation, revision and deletion.

Responsibility:
    Creates invoices with engine-computed totals, revises draft line items
    until the tax amount is finalized, finalizes tax, and deletes invoices
    that pass every eligibility rule.

Architecture position:
    Services -- imperative shell.  Calls the pure tax and reconciliation
    engines for decisions and the repository's unit of work for I/O.

Invariants enforced:
    - ``total_amount == subtotal + tax_amount`` on every stored invoice;
      totals are never accepted from the caller.
    - Once ``tax_finalized_at`` is set, line items and tax never change.
    - Deletion requires DRAFT status, no payments, recency and an
      unfinalized tax amount; every failed condition is reported.
    - Every mutation appends its audit record in the same transaction.

Failure modes:
    - ValidationError / InvalidAmountError / InvalidTaxRateError: bad input.
    - InvoiceLockedError: revision after finalization or outside DRAFT.
    - DeletionNotAllowedError: one or more deletion rules failed.
    - InvoiceNotFoundError: unknown id or another tenant's invoice.

Audit relevance:
    INVOICE_CREATED, INVOICE_REVISED, INVOICE_TAX_FINALIZED and
    INVOICE_DELETED records carry before/after snapshots.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from invoicing_kernel.domain.audit import AuditAction, AuditEntry
from invoicing_kernel.domain.clock import Clock, SystemClock
from invoicing_kernel.domain.context import RequestContext
from invoicing_kernel.domain.currency import CurrencyRegistry
from invoicing_kernel.domain.invoice import Invoice, InvoiceStatus, LineItem
from invoicing_kernel.exceptions import InvoiceLockedError, ValidationError
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.repository.base import InvoiceRepository
from invoicing_config.loader import get_default_config
from invoicing_config.schema import InvoicingConfig
from invoicing_engines.aging import calculate_due_date
from invoicing_engines.reconciliation import DeletionEligibility, check_deletion_eligibility
from invoicing_engines.tax import TaxCalculator, TaxBreakdownLine, validate_tax_id
from invoicing_services.operations import apply_deletion, bind_request

logger = get_logger("services.invoice")


@dataclass(frozen=True)
class InvoiceDraft:
    """Caller input for a new invoice."""

    invoice_number: str
    customer_name: str
    line_items: Sequence[LineItem]
    currency: str | None = None
    issue_date: date | None = None
    due_date: date | None = None
    customer_email: str | None = None
    tax_id: str | None = None


class InvoiceService:
    """
    Single-item invoice operations.

    Contract:
        Each public method runs in exactly one unit of work.  Totals always
        come from the injected TaxCalculator.

    Non-goals:
        Status changes (InvoiceStatusService) and payments
        (PaymentReconciliationService).
    """

    def __init__(
        self,
        repository: InvoiceRepository,
        config: InvoicingConfig | None = None,
        clock: Clock | None = None,
        tax_calculator: TaxCalculator | None = None,
    ):
        self._repository = repository
        self._config = config or get_default_config()
        self._clock = clock or SystemClock()
        self._tax = tax_calculator or TaxCalculator()

    def create_invoice(self, ctx: RequestContext, draft: InvoiceDraft) -> Invoice:
        """
        Create a DRAFT invoice.

        Currency defaults to the configured one; due date defaults to the
        issue date plus the configured payment terms.
        """
        invoice_number = (draft.invoice_number or "").strip()
        customer_name = (draft.customer_name or "").strip()
        if not invoice_number:
            raise ValidationError("invoice_number", "Invoice number is required")
        if not customer_name:
            raise ValidationError("customer_name", "Customer name is required")
        if not draft.line_items:
            raise ValidationError("line_items", "At least one line item is required")

        currency = CurrencyRegistry.validate(draft.currency or self._config.default_currency)
        totals = self._tax.calculate_totals(line_items=draft.line_items, currency=currency)
        tax_id = validate_tax_id(draft.tax_id) if draft.tax_id else None
        issue_date = draft.issue_date or self._clock.today()
        due_date = draft.due_date or calculate_due_date(
            issue_date, self._config.payment_terms_days
        )
        if due_date < issue_date:
            raise ValidationError("due_date", "Due date cannot precede the issue date")

        with bind_request(ctx), self._repository.unit_of_work() as uow:
            invoice = uow.add_invoice(
                tenant_id=ctx.tenant_id,
                invoice_number=invoice_number,
                customer_name=customer_name,
                currency=currency,
                line_items=tuple(draft.line_items),
                subtotal=totals.subtotal,
                tax_amount=totals.tax_amount,
                total_amount=totals.grand_total,
                due_date=due_date,
                actor_id=ctx.actor_id,
                issue_date=issue_date,
                customer_email=draft.customer_email,
                tax_id=tax_id,
            )
            uow.audit.record_invoice_created(
                ctx.tenant_id,
                invoice.id,
                ctx.actor_id,
                after=invoice.to_snapshot(),
                invoice_number=invoice.invoice_number,
            )
            logger.info(
                "invoice_created",
                extra={
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                    "total_amount": str(invoice.total_amount),
                    "currency": currency,
                },
            )
        return invoice

    def revise_line_items(
        self,
        ctx: RequestContext,
        invoice_id: UUID | str,
        line_items: Sequence[LineItem],
    ) -> Invoice:
        """Replace a draft's line items and recompute its totals."""
        if not line_items:
            raise ValidationError("line_items", "At least one line item is required")

        with bind_request(ctx, invoice_id=str(invoice_id)), \
                self._repository.unit_of_work() as uow:
            invoice = uow.get_invoice(invoice_id, ctx.tenant_id)
            self._ensure_revisable(invoice)
            totals = self._tax.calculate_totals(line_items=line_items, currency=invoice.currency)
            updated = uow.replace_line_items(
                invoice.id,
                ctx.tenant_id,
                tuple(line_items),
                subtotal=totals.subtotal,
                tax_amount=totals.tax_amount,
                total_amount=totals.grand_total,
                actor_id=ctx.actor_id,
            )
            uow.audit.append(ctx.tenant_id, AuditEntry(
                entity_type="Invoice",
                entity_id=str(invoice.id),
                action=AuditAction.INVOICE_REVISED,
                actor_id=ctx.actor_id,
                before=invoice.to_snapshot(),
                after=updated.to_snapshot(),
                metadata={"line_count": totals.line_count},
            ))
        logger.info(
            "invoice_revised",
            extra={"invoice_id": str(updated.id), "total_amount": str(updated.total_amount)},
        )
        return updated

    def finalize_tax(self, ctx: RequestContext, invoice_id: UUID | str) -> Invoice:
        """
        Freeze a draft's tax amount.

        Finalizing an already-finalized invoice returns it unchanged.
        """
        with bind_request(ctx, invoice_id=str(invoice_id)), \
                self._repository.unit_of_work() as uow:
            invoice = uow.get_invoice(invoice_id, ctx.tenant_id)
            if invoice.tax_finalized_at is not None:
                return invoice
            if invoice.status != InvoiceStatus.DRAFT:
                raise InvoiceLockedError(invoice.id, invoice.status.value)
            updated = uow.mark_tax_finalized(
                invoice.id, ctx.tenant_id, self._clock.now(), ctx.actor_id
            )
            uow.audit.append(ctx.tenant_id, AuditEntry(
                entity_type="Invoice",
                entity_id=str(invoice.id),
                action=AuditAction.INVOICE_TAX_FINALIZED,
                actor_id=ctx.actor_id,
                before=invoice.to_snapshot(),
                after=updated.to_snapshot(),
                metadata={"tax_amount": str(updated.tax_amount)},
            ))
        logger.info(
            "invoice_tax_finalized",
            extra={"invoice_id": str(updated.id), "tax_amount": str(updated.tax_amount)},
        )
        return updated

    def deletion_eligibility(
        self, ctx: RequestContext, invoice_id: UUID | str
    ) -> DeletionEligibility:
        """Read-only preview of ``delete_invoice``."""
        with self._repository.unit_of_work() as uow:
            invoice = uow.get_invoice(invoice_id, ctx.tenant_id)
        return check_deletion_eligibility(
            invoice,
            as_of=self._clock.now(),
            window_days=self._config.deletion_window_days,
        )

    def delete_invoice(self, ctx: RequestContext, invoice_id: UUID | str) -> None:
        with bind_request(ctx, invoice_id=str(invoice_id)), \
                self._repository.unit_of_work() as uow:
            apply_deletion(uow, ctx, invoice_id, config=self._config, clock=self._clock)

    def get_invoice(self, ctx: RequestContext, invoice_id: UUID | str) -> Invoice:
        with self._repository.unit_of_work() as uow:
            return uow.get_invoice(invoice_id, ctx.tenant_id, lock=False)

    def list_invoices(
        self,
        ctx: RequestContext,
        statuses: Sequence[InvoiceStatus] | None = None,
    ) -> list[Invoice]:
        with self._repository.unit_of_work() as uow:
            return uow.list_invoices(ctx.tenant_id, statuses)

    def tax_breakdown(
        self, ctx: RequestContext, invoice_id: UUID | str
    ) -> tuple[TaxBreakdownLine, ...]:
        """Per-rate taxable base and tax of a stored invoice."""
        invoice = self.get_invoice(ctx, invoice_id)
        return self._tax.breakdown(invoice.line_items, invoice.currency)

    @staticmethod
    def _ensure_revisable(invoice: Invoice) -> None:
        if invoice.tax_finalized_at is not None:
            raise InvoiceLockedError(invoice.id, invoice.status.value, "tax amount is finalized")
        if invoice.status != InvoiceStatus.DRAFT:
            raise InvoiceLockedError(invoice.id, invoice.status.value)
