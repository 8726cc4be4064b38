"""
Builders for engine tests.

Engines operate on frozen Invoice snapshots, so these tests construct the
DTOs directly and never touch a database.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from invoicing_kernel.domain.invoice import (
    Invoice,
    InvoiceStatus,
    LineItem,
    PaymentMethod,
    PaymentRecord,
)

AS_OF = date(2024, 3, 15)
CREATED = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)
DUE = date(2024, 4, 14)


def payment(
    amount: str,
    *,
    verified: bool = True,
    on: date = AS_OF,
    method: PaymentMethod = PaymentMethod.CASH,
) -> PaymentRecord:
    return PaymentRecord(
        id=uuid4(),
        invoice_id=uuid4(),
        amount=Decimal(amount),
        method=method,
        payment_date=on,
        verified=verified,
    )


def build_invoice(
    total: str = "1000.00",
    *,
    status: InvoiceStatus = InvoiceStatus.SENT,
    currency: str = "AED",
    tax: str = "0",
    due_date: date = DUE,
    payments=(),
    created_at: datetime = CREATED,
    tax_finalized_at: datetime | None = None,
) -> Invoice:
    subtotal = Decimal(total) - Decimal(tax)
    return Invoice(
        id=uuid4(),
        tenant_id="tenant-a",
        invoice_number="INV-00001",
        customer_name="Acme Trading LLC",
        currency=currency,
        subtotal=subtotal,
        tax_amount=Decimal(tax),
        total_amount=Decimal(total),
        status=status,
        due_date=due_date,
        created_at=created_at,
        tax_finalized_at=tax_finalized_at,
        line_items=(LineItem("Consulting", Decimal("1"), subtotal),),
        payments=tuple(payments),
    )
