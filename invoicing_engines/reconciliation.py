"""
Module: invoicing_engines.reconciliation
Responsibility:
    Correlate payments against an invoice.  Computes paid and remaining
    amounts, classifies completeness, rejects overpayment, plans the
    automatic status change (to PAID, or back out of PAID on reversal),
    and governs deletion eligibility.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The payment service
    loads the invoice inside a unit of work, calls these functions, and
    persists what they decide.

Invariants enforced:
    - Decimal-only arithmetic; amounts never pass through float.
    - sum(all payment amounts) <= total_amount + tolerance after every
      accepted payment (``check_overpayment``).
    - Completeness counts verified payments only.
    - The automatic move to PAID goes through the transition validator, so
      an illegal edge (e.g. from DRAFT) never fires.
    - Reversal out of PAID happens only on an explicit payment reversal and
      lands on SENT when not yet due, OVERDUE when past due.

Failure modes:
    - OverpaymentError from ``check_overpayment``.
    - InvalidAmountError / InvalidPaymentError / CurrencyMismatchError /
      InvoiceLockedError from ``validate_payment``.

Usage:
    result = reconcile(invoice)
    plan = plan_status_change(invoice, result, as_of=clock.today())
    if plan is not None:
        uow.update_status(invoice.id, plan.to_status, ...)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from uuid import UUID

from invoicing_kernel.domain.currency import CurrencyRegistry, quantize_amount
from invoicing_kernel.domain.invoice import (
    Invoice,
    InvoiceStatus,
    PaymentMethod,
    PaymentRecord,
    PaymentRequest,
)
from invoicing_kernel.domain.values import to_decimal
from invoicing_kernel.domain.workflow import REVERSAL_TRANSITIONS
from invoicing_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidAmountError,
    InvalidPaymentError,
    InvoiceLockedError,
    OverpaymentError,
)
from invoicing_kernel.logging_config import get_logger
from invoicing_engines.tracer import traced_engine
from invoicing_engines.transitions import DEFAULT_POLICY, TransitionPolicy, check_transition

logger = get_logger("engines.reconciliation")

_ZERO = Decimal("0")

DEFAULT_DELETION_WINDOW_DAYS = 30

# Statuses that accept new payments.  PAID is included so a further payment
# is rejected as an overpayment rather than as a status error.
PAYABLE_STATUSES: frozenset[InvoiceStatus] = frozenset({
    InvoiceStatus.SENT,
    InvoiceStatus.OVERDUE,
    InvoiceStatus.DISPUTED,
    InvoiceStatus.PAID,
})


class PaymentState(str, Enum):
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    FULLY_PAID = "FULLY_PAID"


class ReconciliationStatus(str, Enum):
    RECONCILED = "RECONCILED"
    OVERPAID = "OVERPAID"
    UNDERPAID = "UNDERPAID"


class ComplianceFlag(str, Enum):
    FULLY_PAID = "FULLY_PAID"
    CASH_PAYMENT = "CASH_PAYMENT"
    LARGE_PAYMENT = "LARGE_PAYMENT"


@dataclass(frozen=True)
class PaymentRules:
    """
    Acceptance rules for a single payment.

    ``overpayment_tolerance`` is an absolute amount in the invoice currency
    that cumulative payments may exceed the total by.
    """

    minimum_amount: Decimal = Decimal("0.01")
    maximum_amount: Decimal | None = None
    allow_future_dates: bool = False
    reference_required_for: frozenset[PaymentMethod] = field(
        default_factory=lambda: frozenset({PaymentMethod.BANK_TRANSFER, PaymentMethod.CHEQUE})
    )
    overpayment_tolerance: Decimal = _ZERO
    large_payment_threshold: Decimal = Decimal("100000")

    def __post_init__(self) -> None:
        if self.minimum_amount <= _ZERO:
            raise ValueError("minimum_amount must be positive")
        if self.maximum_amount is not None and self.maximum_amount < self.minimum_amount:
            raise ValueError("maximum_amount cannot be less than minimum_amount")
        if self.overpayment_tolerance < _ZERO:
            raise ValueError("overpayment_tolerance cannot be negative")


DEFAULT_RULES = PaymentRules()


@dataclass(frozen=True)
class ReconciliationResult:
    """Payment completeness of one invoice."""

    invoice_id: UUID
    currency: str
    total_amount: Decimal
    total_paid: Decimal
    remaining: Decimal
    state: PaymentState
    payment_count: int
    verified_count: int

    @property
    def is_fully_paid(self) -> bool:
        return self.state == PaymentState.FULLY_PAID


@dataclass(frozen=True)
class PlannedTransition:
    """A status change the reconciliation engine wants applied."""

    from_status: InvoiceStatus
    to_status: InvoiceStatus
    trigger: str


@dataclass(frozen=True)
class ReconciliationAudit:
    """Discrepancy check used by periodic consistency sweeps."""

    invoice_id: UUID
    invoice_number: str
    currency: str
    total_amount: Decimal
    total_paid: Decimal
    discrepancy: Decimal
    status: ReconciliationStatus
    payment_count: int


@dataclass(frozen=True)
class DeletionEligibility:
    eligible: bool
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class TimelineEntry:
    """Running totals after one verified payment."""

    payment_id: UUID
    payment_date: date
    amount: Decimal
    cumulative_paid: Decimal
    remaining: Decimal


def _verified_total(payments: Sequence[PaymentRecord]) -> Decimal:
    return sum((p.amount for p in payments if p.verified), _ZERO)


def _recorded_total(payments: Sequence[PaymentRecord]) -> Decimal:
    return sum((p.amount for p in payments), _ZERO)


@traced_engine("reconciliation", "1.0")
def reconcile(
    invoice: Invoice,
    payments: Sequence[PaymentRecord] | None = None,
) -> ReconciliationResult:
    """
    Recompute paid and remaining amounts from verified payments.

    Fully paid means the remaining balance is below one minor unit of
    the currency.  ``payments`` defaults to the invoice's own.
    """
    records = invoice.payments if payments is None else tuple(payments)
    total_paid = _verified_total(records)
    remaining = invoice.total_amount - total_paid
    tolerance = CurrencyRegistry.get_rounding_tolerance(invoice.currency)

    if remaining < tolerance:
        state = PaymentState.FULLY_PAID
    elif total_paid > _ZERO:
        state = PaymentState.PARTIALLY_PAID
    else:
        state = PaymentState.UNPAID

    return ReconciliationResult(
        invoice_id=invoice.id,
        currency=invoice.currency,
        total_amount=invoice.total_amount,
        total_paid=total_paid,
        remaining=remaining,
        state=state,
        payment_count=len(records),
        verified_count=sum(1 for p in records if p.verified),
    )


def check_overpayment(
    invoice: Invoice,
    payments: Sequence[PaymentRecord],
    amount: Decimal,
    tolerance: Decimal = _ZERO,
) -> Decimal:
    """
    Reject ``amount`` when all recorded payments plus it exceed the total.

    Verified or not, every recorded payment counts: an unverified payment
    still reserves its share of the balance.

    Returns:
        The cumulative recorded amount including ``amount``.

    Raises:
        OverpaymentError: the cap ``total_amount + tolerance`` would be exceeded.
    """
    recorded = _recorded_total(payments)
    cumulative = recorded + amount
    if cumulative > invoice.total_amount + tolerance:
        remaining = max(invoice.total_amount - recorded, _ZERO)
        logger.info(
            "overpayment_rejected",
            extra={
                "invoice_id": str(invoice.id),
                "amount": str(amount),
                "remaining": str(remaining),
                "currency": invoice.currency,
            },
        )
        raise OverpaymentError(invoice.id, amount, remaining, invoice.currency)
    return cumulative


def reversal_target(invoice: Invoice, as_of: date) -> InvoiceStatus:
    """Status a PAID invoice returns to once a reversal leaves it short."""
    action = "reverse_payment_not_due" if invoice.due_date >= as_of else "reverse_payment_past_due"
    edge = next(
        t for t in REVERSAL_TRANSITIONS
        if t.from_state == InvoiceStatus.PAID and t.action == action
    )
    return edge.to_state


def plan_status_change(
    invoice: Invoice,
    result: ReconciliationResult,
    as_of: date,
    policy: TransitionPolicy = DEFAULT_POLICY,
    *,
    reversal: bool = False,
) -> PlannedTransition | None:
    """
    Decide the status change implied by ``result``, if any.

    ``invoice`` must reflect the payments ``result`` was computed from.
    A PAID invoice only leaves PAID when ``reversal`` is set, i.e. when the
    caller just withdrew a payment; adding or verifying payments never
    moves an invoice out of PAID.
    """
    if result.is_fully_paid:
        if invoice.status == InvoiceStatus.PAID or invoice.is_terminal:
            return None
        decision = check_transition(invoice, InvoiceStatus.PAID, policy=policy)
        if not decision.allowed:
            logger.info(
                "auto_paid_transition_skipped",
                extra={
                    "invoice_id": str(invoice.id),
                    "status": invoice.status.value,
                    "code": decision.code,
                },
            )
            return None
        return PlannedTransition(invoice.status, InvoiceStatus.PAID, "payment_complete")

    if reversal and invoice.status == InvoiceStatus.PAID:
        return PlannedTransition(
            InvoiceStatus.PAID,
            reversal_target(invoice, as_of),
            "payment_reversed",
        )
    return None


@traced_engine("reconciliation_audit", "1.0")
def audit_reconciliation(
    invoice: Invoice,
    payments: Sequence[PaymentRecord] | None = None,
) -> ReconciliationAudit:
    """
    Classify ``total_paid - total_amount``.

    Idempotent: the same inputs always give the same classification.
    """
    records = invoice.payments if payments is None else tuple(payments)
    total_paid = _verified_total(records)
    discrepancy = total_paid - invoice.total_amount
    if discrepancy == _ZERO:
        status = ReconciliationStatus.RECONCILED
    elif discrepancy > _ZERO:
        status = ReconciliationStatus.OVERPAID
    else:
        status = ReconciliationStatus.UNDERPAID
    return ReconciliationAudit(
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        currency=invoice.currency,
        total_amount=invoice.total_amount,
        total_paid=total_paid,
        discrepancy=discrepancy,
        status=status,
        payment_count=len(records),
    )


def check_deletion_eligibility(
    invoice: Invoice,
    as_of: datetime,
    payment_count: int | None = None,
    window_days: int = DEFAULT_DELETION_WINDOW_DAYS,
) -> DeletionEligibility:
    """
    Evaluate every deletion condition; each failure gets its own reason.
    """
    count = len(invoice.payments) if payment_count is None else payment_count
    reasons: list[str] = []

    if invoice.status != InvoiceStatus.DRAFT:
        reasons.append(
            "Cannot delete: only DRAFT invoices can be deleted "
            f"(current status: {invoice.status.value})"
        )
    if count > 0:
        reasons.append(
            f"Cannot delete: invoice has {count} recorded payment(s)"
        )
    if as_of - invoice.created_at > timedelta(days=window_days):
        reasons.append(
            f"Cannot delete: invoice was created more than {window_days} days ago"
        )
    if invoice.tax_finalized_at is not None:
        reasons.append("Cannot delete: invoice carries a finalized tax amount")

    return DeletionEligibility(eligible=not reasons, reasons=tuple(reasons))


def validate_payment(
    request: PaymentRequest,
    invoice: Invoice,
    today: date,
    rules: PaymentRules = DEFAULT_RULES,
) -> Decimal:
    """
    Check a payment request against the invoice and the payment rules.

    Returns:
        The payment amount as an exact Decimal.
    """
    if invoice.status not in PAYABLE_STATUSES:
        raise InvoiceLockedError(
            invoice.id,
            invoice.status.value,
            f"Payments cannot be recorded against a {invoice.status.value} invoice",
        )
    if request.currency is not None and request.currency.upper() != invoice.currency:
        raise CurrencyMismatchError(invoice.currency, request.currency)

    amount = to_decimal(request.amount)
    if amount <= _ZERO:
        raise InvalidAmountError("amount", amount, "Payment amount must be positive")
    if quantize_amount(amount, invoice.currency) != amount:
        raise InvalidAmountError(
            "amount",
            amount,
            f"Payment amount has more decimal places than {invoice.currency} allows",
        )
    if amount < rules.minimum_amount:
        raise InvalidPaymentError(
            "amount", f"Payment amount must be at least {rules.minimum_amount}"
        )
    if rules.maximum_amount is not None and amount > rules.maximum_amount:
        raise InvalidPaymentError(
            "amount", f"Payment amount cannot exceed {rules.maximum_amount}"
        )
    if not rules.allow_future_dates and request.payment_date > today:
        raise InvalidPaymentError("payment_date", "Payment date cannot be in the future")
    if request.method in rules.reference_required_for and not (request.reference or "").strip():
        raise InvalidPaymentError(
            "reference",
            f"{request.method.value} payments require a reference",
        )
    return amount


def compliance_flags(
    result: ReconciliationResult,
    method: PaymentMethod,
    amount: Decimal,
    rules: PaymentRules = DEFAULT_RULES,
) -> tuple[ComplianceFlag, ...]:
    """Review hints attached to an applied payment."""
    flags: list[ComplianceFlag] = []
    if result.is_fully_paid:
        flags.append(ComplianceFlag.FULLY_PAID)
    if method == PaymentMethod.CASH:
        flags.append(ComplianceFlag.CASH_PAYMENT)
    if amount >= rules.large_payment_threshold:
        flags.append(ComplianceFlag.LARGE_PAYMENT)
    return tuple(flags)


def payment_timeline(
    invoice: Invoice,
    payments: Sequence[PaymentRecord] | None = None,
) -> tuple[TimelineEntry, ...]:
    """Verified payments in date order with running paid/remaining."""
    records = invoice.payments if payments is None else tuple(payments)
    ordered = sorted((p for p in records if p.verified), key=lambda p: p.payment_date)
    running = _ZERO
    entries = []
    for payment in ordered:
        running += payment.amount
        entries.append(TimelineEntry(
            payment_id=payment.id,
            payment_date=payment.payment_date,
            amount=payment.amount,
            cumulative_paid=running,
            remaining=invoice.total_amount - running,
        ))
    return tuple(entries)
