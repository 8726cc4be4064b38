"""
Invoice domain DTOs.

Frozen snapshots of persisted invoices, line items and payments.  Engines
operate on these; only the repository converts between them and ORM rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from invoicing_kernel.domain.currency import CurrencyRegistry
from invoicing_kernel.domain.values import to_decimal
from invoicing_kernel.exceptions import ValidationError


class InvoiceStatus(str, Enum):
    """Lifecycle status of an invoice."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    OVERDUE = "OVERDUE"
    PAID = "PAID"
    DISPUTED = "DISPUTED"
    WRITTEN_OFF = "WRITTEN_OFF"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES: frozenset[InvoiceStatus] = frozenset({
    InvoiceStatus.PAID,
    InvoiceStatus.WRITTEN_OFF,
    InvoiceStatus.CANCELLED,
})


class PaymentMethod(str, Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    CARD = "CARD"
    OTHER = "OTHER"


@dataclass(frozen=True, slots=True)
class LineItem:
    """One billable line: ``quantity * unit_price`` taxed at ``tax_rate`` percent."""

    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", to_decimal(self.quantity, "quantity"))
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price, "unit_price"))
        object.__setattr__(self, "tax_rate", to_decimal(self.tax_rate, "tax_rate"))

    @property
    def net_amount(self) -> Decimal:
        """Unrounded line net."""
        return self.quantity * self.unit_price

    @property
    def tax_amount(self) -> Decimal:
        """Unrounded line tax."""
        return self.quantity * self.unit_price * self.tax_rate / Decimal("100")


@dataclass(frozen=True, slots=True)
class PaymentRecord:
    """A payment recorded against an invoice."""

    id: UUID
    invoice_id: UUID
    amount: Decimal
    method: PaymentMethod
    payment_date: date
    verified: bool
    reference: str | None = None
    notes: str | None = None
    created_at: datetime | None = None

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "invoice_id": str(self.invoice_id),
            "amount": str(self.amount),
            "method": self.method.value,
            "payment_date": self.payment_date.isoformat(),
            "verified": self.verified,
            "reference": self.reference,
        }


@dataclass(frozen=True, slots=True)
class PaymentRequest:
    """Caller input for recording a payment."""

    amount: Decimal
    method: PaymentMethod
    payment_date: date
    reference: str | None = None
    notes: str | None = None
    currency: str | None = None
    verified: bool = True


@dataclass(frozen=True, slots=True)
class Invoice:
    """
    Immutable snapshot of an invoice and its dependents.

    Guarantees:
        - ``total_amount == subtotal + tax_amount``.
        - ``currency`` is a registered ISO 4217 code.
    """

    id: UUID
    tenant_id: str
    invoice_number: str
    customer_name: str
    currency: str
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    status: InvoiceStatus
    due_date: date
    created_at: datetime
    issue_date: date | None = None
    customer_email: str | None = None
    tax_id: str | None = None
    tax_finalized_at: datetime | None = None
    version: int = 1
    line_items: tuple[LineItem, ...] = field(default_factory=tuple)
    payments: tuple[PaymentRecord, ...] = field(default_factory=tuple)
    reminder_count: int = 0

    def __post_init__(self) -> None:
        CurrencyRegistry.validate(self.currency)
        if self.subtotal + self.tax_amount != self.total_amount:
            raise ValidationError(
                "total_amount",
                f"total_amount {self.total_amount} != subtotal {self.subtotal} "
                f"+ tax_amount {self.tax_amount}",
            )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def verified_payments(self) -> tuple[PaymentRecord, ...]:
        return tuple(p for p in self.payments if p.verified)

    @property
    def total_paid(self) -> Decimal:
        """Sum of verified payment amounts."""
        return sum((p.amount for p in self.payments if p.verified), Decimal("0"))

    @property
    def total_recorded(self) -> Decimal:
        """Sum of all payment amounts, verified or not."""
        return sum((p.amount for p in self.payments), Decimal("0"))

    @property
    def outstanding(self) -> Decimal:
        return self.total_amount - self.total_paid

    @property
    def last_payment_date(self) -> date | None:
        dates = [p.payment_date for p in self.payments if p.verified]
        return max(dates) if dates else None

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-safe state used for audit before/after images."""
        return {
            "status": self.status.value,
            "currency": self.currency,
            "subtotal": str(self.subtotal),
            "tax_amount": str(self.tax_amount),
            "total_amount": str(self.total_amount),
            "total_paid": str(self.total_paid),
            "due_date": self.due_date.isoformat(),
            "tax_finalized": self.tax_finalized_at is not None,
            "payment_count": len(self.payments),
        }
