"""
Single-item invoicing services.

Each service receives its repository, configuration and clock by
injection.  The unit-level helpers in ``operations`` are shared with the
bulk action handlers.
"""

from invoicing_services.invoice_service import InvoiceDraft, InvoiceService
from invoicing_services.notifications import (
    NotificationGateway,
    RecordingNotificationGateway,
    SendIntent,
)
from invoicing_services.operations import StatusChangeResult
from invoicing_services.payment_service import (
    InvoiceReconciliation,
    PaymentApplication,
    PaymentReconciliationService,
    ReconciliationSweep,
)
from invoicing_services.status_service import (
    InvoiceStatusService,
    OverdueSweep,
    StatusInsights,
)

__all__ = [
    "InvoiceDraft",
    "InvoiceReconciliation",
    "InvoiceService",
    "InvoiceStatusService",
    "NotificationGateway",
    "OverdueSweep",
    "PaymentApplication",
    "PaymentReconciliationService",
    "ReconciliationSweep",
    "RecordingNotificationGateway",
    "SendIntent",
    "StatusChangeResult",
    "StatusInsights",
]
