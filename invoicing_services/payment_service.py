"""
PaymentReconciliationService -- payments, verification and reconciliation.

Responsibility:
    Records payments under the invoice's row lock, re-derives the paid
    balance from verified payments, and applies the status change the
    reconciliation engine plans (auto-PAID, or back out of PAID after a
    reversal).  Also serves read-only reconciliation reports.

Architecture position:
    Services -- imperative shell over ``invoicing_engines.reconciliation``.

Invariants enforced:
    - No overpayment: recorded payments never exceed the invoice total
      plus the configured tolerance, even under concurrent callers,
      because the invoice row is locked before the check.
    - ``total_paid`` is always recomputed from verified payment rows.
    - Payment, status change and audit records commit together.

Failure modes:
    - InvoiceLockedError: invoice status does not accept payments.
    - InvalidAmountError / InvalidPaymentError / CurrencyMismatchError.
    - OverpaymentError: amount exceeds the remaining balance.
    - PaymentNotFoundError / InvoiceNotFoundError.

Audit relevance:
    PAYMENT_RECORDED, PAYMENT_VERIFIED and PAYMENT_REVERSED (HIGH) records,
    plus an INVOICE_STATUS_CHANGED record whenever the status moves.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from uuid import UUID

from invoicing_kernel.domain.audit import AuditAction
from invoicing_kernel.domain.clock import Clock, SystemClock
from invoicing_kernel.domain.context import RequestContext
from invoicing_kernel.domain.invoice import (
    Invoice,
    InvoiceStatus,
    PaymentRecord,
    PaymentRequest,
)
from invoicing_kernel.exceptions import InvalidPaymentError, ValidationError
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.repository.base import InvoiceRepository, UnitOfWork
from invoicing_config.loader import get_default_config
from invoicing_config.schema import InvoicingConfig
from invoicing_engines.reconciliation import (
    ComplianceFlag,
    PlannedTransition,
    ReconciliationAudit,
    ReconciliationResult,
    ReconciliationStatus,
    TimelineEntry,
    audit_reconciliation,
    check_overpayment,
    compliance_flags,
    payment_timeline,
    plan_status_change,
    reconcile,
    validate_payment,
)
from invoicing_services.operations import bind_request

logger = get_logger("services.payment")


@dataclass(frozen=True)
class PaymentApplication:
    """Outcome of recording, verifying or reversing a payment."""

    payment: PaymentRecord
    invoice: Invoice
    reconciliation: ReconciliationResult
    status_change: PlannedTransition | None = None
    flags: tuple[ComplianceFlag, ...] = ()

    @property
    def status_changed(self) -> bool:
        return self.status_change is not None


@dataclass(frozen=True)
class InvoiceReconciliation:
    """Full reconciliation view of one invoice."""

    invoice: Invoice
    result: ReconciliationResult
    audit: ReconciliationAudit
    timeline: tuple[TimelineEntry, ...]


@dataclass(frozen=True)
class ReconciliationSweep:
    """Tenant-wide discrepancy report."""

    audits: tuple[ReconciliationAudit, ...]
    counts: dict[str, int]

    @property
    def discrepancies(self) -> tuple[ReconciliationAudit, ...]:
        return tuple(a for a in self.audits if a.status != ReconciliationStatus.RECONCILED)


class PaymentReconciliationService:
    """
    Payment application and reconciliation.

    Contract:
        Each mutating call locks the invoice, applies one payment change,
        reconciles and commits in a single unit of work.

    Guarantees:
        - The auto-PAID transition goes through the same guard as a manual
          one, so a fully paid invoice always passes it.
        - A reversal out of PAID lands on SENT while the due date has not
          passed, otherwise OVERDUE.
    """

    def __init__(
        self,
        repository: InvoiceRepository,
        config: InvoicingConfig | None = None,
        clock: Clock | None = None,
    ):
        self._repository = repository
        self._config = config or get_default_config()
        self._clock = clock or SystemClock()

    def apply_payment(
        self,
        ctx: RequestContext,
        invoice_id: UUID | str,
        request: PaymentRequest,
    ) -> PaymentApplication:
        rules = self._config.payment_rules
        with bind_request(ctx, invoice_id=str(invoice_id)), \
                self._repository.unit_of_work() as uow:
            invoice = uow.get_invoice(invoice_id, ctx.tenant_id)
            amount = validate_payment(request, invoice, self._clock.today(), rules)
            check_overpayment(invoice, invoice.payments, amount, rules.overpayment_tolerance)

            payment = uow.add_payment(
                invoice_id=invoice.id,
                tenant_id=ctx.tenant_id,
                amount=amount,
                method=request.method,
                payment_date=request.payment_date,
                verified=request.verified,
                actor_id=ctx.actor_id,
                reference=(request.reference or "").strip() or None,
                notes=request.notes,
            )
            paid = uow.get_invoice(invoice.id, ctx.tenant_id)
            result = reconcile(paid)
            flags = compliance_flags(result, request.method, amount, rules)
            uow.audit.record_payment(
                ctx.tenant_id,
                payment.id,
                AuditAction.PAYMENT_RECORDED,
                ctx.actor_id,
                before=None,
                after=payment.to_snapshot(),
                metadata={
                    "invoice_id": str(invoice.id),
                    "total_paid": str(result.total_paid),
                    "remaining": str(result.remaining),
                    "payment_state": result.state.value,
                    "compliance_flags": [f.value for f in flags],
                },
            )
            final, change = self._apply_planned(uow, ctx, paid, result)

        logger.info(
            "payment_applied",
            extra={
                "invoice_id": str(invoice.id),
                "payment_id": str(payment.id),
                "amount": str(amount),
                "remaining": str(result.remaining),
                "payment_state": result.state.value,
                "verified": payment.verified,
            },
        )
        return PaymentApplication(payment, final, result, change, flags)

    def verify_payment(self, ctx: RequestContext, payment_id: UUID | str) -> PaymentApplication:
        """Mark a pending payment verified and reconcile its invoice."""
        with bind_request(ctx), self._repository.unit_of_work() as uow:
            before = uow.get_payment(payment_id, ctx.tenant_id)
            if before.verified:
                raise InvalidPaymentError("verified", "Payment is already verified")
            payment = uow.set_payment_verified(before.id, ctx.tenant_id, True, ctx.actor_id)
            invoice = uow.get_invoice(payment.invoice_id, ctx.tenant_id)
            result = reconcile(invoice)
            uow.audit.record_payment(
                ctx.tenant_id,
                payment.id,
                AuditAction.PAYMENT_VERIFIED,
                ctx.actor_id,
                before=before.to_snapshot(),
                after=payment.to_snapshot(),
                metadata={"invoice_id": str(invoice.id), "total_paid": str(result.total_paid)},
            )
            final, change = self._apply_planned(uow, ctx, invoice, result)

        logger.info(
            "payment_verified",
            extra={"payment_id": str(payment.id), "invoice_id": str(invoice.id)},
        )
        return PaymentApplication(payment, final, result, change)

    def reverse_payment(
        self,
        ctx: RequestContext,
        payment_id: UUID | str,
        reason: str,
    ) -> PaymentApplication:
        """
        Withdraw a verified payment from the paid balance.

        The payment row is kept and flagged unverified.  A PAID invoice that
        is no longer fully paid moves back to SENT or OVERDUE.
        """
        if not (reason or "").strip():
            raise ValidationError("reason", "A reason is required to reverse a payment")

        with bind_request(ctx), self._repository.unit_of_work() as uow:
            before = uow.get_payment(payment_id, ctx.tenant_id)
            if not before.verified:
                raise InvalidPaymentError("verified", "Only verified payments can be reversed")
            payment = uow.set_payment_verified(before.id, ctx.tenant_id, False, ctx.actor_id)
            invoice = uow.get_invoice(payment.invoice_id, ctx.tenant_id)
            result = reconcile(invoice)
            uow.audit.record_payment(
                ctx.tenant_id,
                payment.id,
                AuditAction.PAYMENT_REVERSED,
                ctx.actor_id,
                before=before.to_snapshot(),
                after=payment.to_snapshot(),
                metadata={
                    "invoice_id": str(invoice.id),
                    "reason": reason,
                    "total_paid": str(result.total_paid),
                    "remaining": str(result.remaining),
                },
            )
            final, change = self._apply_planned(
                uow, ctx, invoice, result, reason=reason, reversal=True
            )

        logger.warning(
            "payment_reversed",
            extra={
                "payment_id": str(payment.id),
                "invoice_id": str(invoice.id),
                "amount": str(payment.amount),
                "to_status": final.status.value,
            },
        )
        return PaymentApplication(payment, final, result, change)

    def reconciliation_audit(
        self, ctx: RequestContext, invoice_id: UUID | str
    ) -> ReconciliationAudit:
        with self._repository.unit_of_work() as uow:
            invoice = uow.get_invoice(invoice_id, ctx.tenant_id)
        return audit_reconciliation(invoice)

    def invoice_reconciliation(
        self, ctx: RequestContext, invoice_id: UUID | str
    ) -> InvoiceReconciliation:
        with self._repository.unit_of_work() as uow:
            invoice = uow.get_invoice(invoice_id, ctx.tenant_id)
        return InvoiceReconciliation(
            invoice=invoice,
            result=reconcile(invoice),
            audit=audit_reconciliation(invoice),
            timeline=payment_timeline(invoice),
        )

    def reconciliation_sweep(
        self,
        ctx: RequestContext,
        statuses: tuple[InvoiceStatus, ...] | None = None,
    ) -> ReconciliationSweep:
        """Audit every invoice of the tenant; nothing is modified."""
        with self._repository.unit_of_work() as uow:
            invoices = uow.list_invoices(ctx.tenant_id, statuses)
        audits = tuple(audit_reconciliation(inv) for inv in invoices)
        counts = Counter(a.status.value for a in audits)
        sweep = ReconciliationSweep(audits=audits, counts=dict(counts))
        if sweep.discrepancies:
            logger.warning(
                "reconciliation_discrepancies_found",
                extra={
                    "invoice_count": len(audits),
                    "discrepancy_count": len(sweep.discrepancies),
                },
            )
        return sweep

    def _apply_planned(
        self,
        uow: UnitOfWork,
        ctx: RequestContext,
        invoice: Invoice,
        result: ReconciliationResult,
        reason: str | None = None,
        reversal: bool = False,
    ) -> tuple[Invoice, PlannedTransition | None]:
        change = plan_status_change(
            invoice,
            result,
            self._clock.today(),
            self._config.transition_policy,
            reversal=reversal,
        )
        if change is None:
            return invoice, None
        updated = uow.update_status(invoice.id, ctx.tenant_id, change.to_status, ctx.actor_id)
        uow.audit.record_status_changed(
            ctx.tenant_id,
            invoice.id,
            ctx.actor_id,
            before=invoice.to_snapshot(),
            after=updated.to_snapshot(),
            reason=reason,
            trigger=change.trigger,
        )
        logger.info(
            "invoice_status_changed",
            extra={
                "invoice_id": str(invoice.id),
                "from_status": change.from_status.value,
                "to_status": change.to_status.value,
                "trigger": change.trigger,
            },
        )
        return updated, change
