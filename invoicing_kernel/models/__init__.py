"""ORM models for the invoicing kernel."""

from invoicing_kernel.models.audit_event import (
    AuditAction,
    AuditEvent,
    AuditSequence,
    AuditSeverity,
)
from invoicing_kernel.models.invoice import (
    InvoiceModel,
    LineItemModel,
    PaymentModel,
    ReminderLogModel,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "AuditSequence",
    "AuditSeverity",
    "InvoiceModel",
    "LineItemModel",
    "PaymentModel",
    "ReminderLogModel",
]
