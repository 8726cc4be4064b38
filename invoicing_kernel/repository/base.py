"""
InvoiceRepository -- abstract transactional store for invoices.

Services and the bulk processor depend on these protocols only.  One
``unit_of_work()`` is one atomic unit: everything done through the yielded
UnitOfWork commits together on normal exit and rolls back together on any
exception, including a deadline overrun.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from contextlib import AbstractContextManager
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from invoicing_kernel.domain.audit import AuditEntry, AuditRecord
from invoicing_kernel.domain.invoice import (
    Invoice,
    InvoiceStatus,
    LineItem,
    PaymentMethod,
    PaymentRecord,
)
from invoicing_kernel.services.auditor_service import AuditorService


class UnitOfWork(Protocol):
    """Operations available inside one atomic unit.

    Every lookup is tenant-scoped: an id that is absent or belongs to
    another tenant raises the same NotFoundError.
    """

    @property
    def audit(self) -> AuditorService: ...

    def get_invoice(self, invoice_id: UUID | str, tenant_id: str, *, lock: bool = True) -> Invoice:
        """Read an invoice; with ``lock`` it stays row-locked for the rest of the unit."""
        ...

    def get_invoices(
        self, invoice_ids: Iterable[UUID | str], tenant_id: str
    ) -> dict[str, Invoice]:
        """Resolve many ids at once; unresolvable ids are simply absent."""
        ...

    def list_invoices(
        self,
        tenant_id: str,
        statuses: Sequence[InvoiceStatus] | None = None,
    ) -> list[Invoice]: ...

    def add_invoice(
        self,
        *,
        tenant_id: str,
        invoice_number: str,
        customer_name: str,
        currency: str,
        line_items: Sequence[LineItem],
        subtotal: Decimal,
        tax_amount: Decimal,
        total_amount: Decimal,
        due_date: date,
        actor_id: str,
        issue_date: date | None = None,
        customer_email: str | None = None,
        tax_id: str | None = None,
    ) -> Invoice: ...

    def replace_line_items(
        self,
        invoice_id: UUID | str,
        tenant_id: str,
        line_items: Sequence[LineItem],
        subtotal: Decimal,
        tax_amount: Decimal,
        total_amount: Decimal,
        actor_id: str,
    ) -> Invoice: ...

    def update_status(
        self,
        invoice_id: UUID | str,
        tenant_id: str,
        status: InvoiceStatus,
        actor_id: str,
    ) -> Invoice: ...

    def mark_tax_finalized(
        self,
        invoice_id: UUID | str,
        tenant_id: str,
        finalized_at: datetime,
        actor_id: str,
    ) -> Invoice: ...

    def touch(self, invoice_id: UUID | str, tenant_id: str, actor_id: str) -> None:
        """Bump the invoice version so concurrent units conflict."""
        ...

    def add_payment(
        self,
        *,
        invoice_id: UUID | str,
        tenant_id: str,
        amount: Decimal,
        method: PaymentMethod,
        payment_date: date,
        verified: bool,
        actor_id: str,
        reference: str | None = None,
        notes: str | None = None,
    ) -> PaymentRecord: ...

    def get_payment(self, payment_id: UUID | str, tenant_id: str) -> PaymentRecord: ...

    def set_payment_verified(
        self,
        payment_id: UUID | str,
        tenant_id: str,
        verified: bool,
        actor_id: str,
    ) -> PaymentRecord: ...

    def delete_invoice(self, invoice_id: UUID | str, tenant_id: str) -> None:
        """Delete an invoice with its line items, payments and reminder logs."""
        ...

    def add_reminder_log(
        self,
        *,
        invoice_id: UUID | str,
        tenant_id: str,
        template_id: str,
        recipient: str,
        subject: str,
        actor_id: str,
    ) -> None: ...

    def append_audit(self, tenant_id: str, entry: AuditEntry) -> AuditRecord: ...

    def check_deadline(self) -> None:
        """Raise UnitTimeoutError when the unit's deadline has passed."""
        ...


@runtime_checkable
class InvoiceRepository(Protocol):
    """Source of atomic units of work."""

    def unit_of_work(self, timeout: float | None = None) -> AbstractContextManager[UnitOfWork]:
        """
        Open one atomic unit.

        Commits on normal exit; rolls back and re-raises on any exception.
        ``timeout`` (seconds) bounds the unit; overrunning it rolls back
        with UnitTimeoutError.
        """
        ...
