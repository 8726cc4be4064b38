"""Pure domain types: invoices, money, currencies, workflow, audit DTOs, clock."""

from invoicing_kernel.domain.audit import (
    AuditAction,
    AuditEntry,
    AuditQuery,
    AuditRecord,
    AuditSeverity,
    diff_snapshots,
)
from invoicing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from invoicing_kernel.domain.context import RequestContext
from invoicing_kernel.domain.currency import CurrencyRegistry, format_amount, quantize_amount
from invoicing_kernel.domain.invoice import (
    TERMINAL_STATUSES,
    Invoice,
    InvoiceStatus,
    LineItem,
    PaymentMethod,
    PaymentRecord,
    PaymentRequest,
)
from invoicing_kernel.domain.values import Money, to_decimal
from invoicing_kernel.domain.workflow import (
    INVOICE_WORKFLOW,
    REVERSAL_TRANSITIONS,
    Guard,
    Transition,
    Workflow,
)

__all__ = [
    "AuditAction",
    "AuditEntry",
    "AuditQuery",
    "AuditRecord",
    "AuditSeverity",
    "Clock",
    "CurrencyRegistry",
    "DeterministicClock",
    "Guard",
    "INVOICE_WORKFLOW",
    "Invoice",
    "InvoiceStatus",
    "LineItem",
    "Money",
    "PaymentMethod",
    "PaymentRecord",
    "PaymentRequest",
    "REVERSAL_TRANSITIONS",
    "RequestContext",
    "SystemClock",
    "TERMINAL_STATUSES",
    "Transition",
    "Workflow",
    "diff_snapshots",
    "format_amount",
    "quantize_amount",
    "to_decimal",
]
