"""
Module: invoicing_kernel.models.invoice
Responsibility: ORM persistence for invoices and their dependents (line
    items, payments, reminder log entries).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ enums only.

Invariants enforced:
    - total_amount == subtotal + tax_amount (checked by the Invoice DTO).
    - Amount columns immutable once status leaves DRAFT (ORM listener in
      db/immutability.py).
    - ``version`` is the SQLAlchemy version_id_col: every UPDATE is
      conditioned on the version read, so a lost update raises StaleDataError.
    - Dependents cascade on invoice deletion (ORM cascade + ON DELETE CASCADE).
    - (tenant_id, invoice_number) is unique.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoicing_kernel.db.base import Base, TrackedBase, UUIDString
from invoicing_kernel.domain.invoice import InvoiceStatus, PaymentMethod


class InvoiceModel(TrackedBase):
    """Persisted invoice header."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoice_tenant_number"),
        Index("idx_invoice_tenant_status", "tenant_id", "status"),
        Index("idx_invoice_tenant_due", "tenant_id", "due_date"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[InvoiceStatus] = mapped_column(
        SAEnum(InvoiceStatus, native_enum=False, length=20),
        nullable=False,
        default=InvoiceStatus.DRAFT,
    )

    due_date: Mapped[date] = mapped_column(nullable=False)
    issue_date: Mapped[date | None] = mapped_column(nullable=True)
    tax_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    tax_finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    line_items: Mapped[list[LineItemModel]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="LineItemModel.position",
        lazy="selectin",
        passive_deletes=True,
    )
    payments: Mapped[list[PaymentModel]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="PaymentModel.payment_date",
        lazy="selectin",
        passive_deletes=True,
    )
    reminder_logs: Mapped[list[ReminderLogModel]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} {self.status.value} {self.total_amount} {self.currency}>"


class LineItemModel(Base):
    """Persisted invoice line item."""

    __tablename__ = "invoice_line_items"

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(nullable=False)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="line_items")


class PaymentModel(TrackedBase):
    """
    Persisted payment.

    Only ``verified`` (and the update metadata) may change after insert;
    the repository never issues other updates.
    """

    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(PaymentMethod, native_enum=False, length=20),
        nullable=False,
    )
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_date: Mapped[date] = mapped_column(nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="payments")


class ReminderLogModel(Base):
    """One queued payment reminder (a send-intent handed to notifications)."""

    __tablename__ = "reminder_logs"

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    template_id: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    queued_at: Mapped[datetime] = mapped_column(nullable=False)
    queued_by: Mapped[str] = mapped_column(String(64), nullable=False)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="reminder_logs")
