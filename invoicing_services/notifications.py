"""
Notification collaborator contract.

The core never delivers messages.  It renders a reminder template and hands
a ``SendIntent`` to an injected ``NotificationGateway``; delivery, retries
and channels belong to the gateway's owner.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from datetime import date
from typing import Protocol, runtime_checkable

from invoicing_kernel.domain.values import Money
from invoicing_kernel.domain.invoice import Invoice
from invoicing_kernel.logging_config import get_logger
from invoicing_config.schema import ReminderTemplate
from invoicing_engines.aging import days_overdue

logger = get_logger("services.notifications")

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(frozen=True)
class SendIntent:
    """A request to contact the customer about one invoice."""

    invoice_id: str
    template_id: str
    recipient: str
    subject: str
    body: str


@runtime_checkable
class NotificationGateway(Protocol):
    """Fire-and-forget sink for send intents."""

    def submit(self, intent: SendIntent) -> None: ...


class RecordingNotificationGateway:
    """Gateway that keeps every submitted intent in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._intents: list[SendIntent] = []

    def submit(self, intent: SendIntent) -> None:
        with self._lock:
            self._intents.append(intent)
        logger.debug(
            "send_intent_recorded",
            extra={"invoice_id": intent.invoice_id, "template_id": intent.template_id},
        )

    @property
    def intents(self) -> tuple[SendIntent, ...]:
        with self._lock:
            return tuple(self._intents)


def template_variables(invoice: Invoice, as_of: date) -> dict[str, str]:
    return {
        "invoiceNumber": invoice.invoice_number,
        "customerName": invoice.customer_name,
        "amount": Money.of(invoice.outstanding, invoice.currency).format(),
        "dueDate": invoice.due_date.isoformat(),
        "daysPastDue": str(days_overdue(invoice.due_date, as_of)),
    }


def render(text: str, variables: dict[str, str]) -> str:
    """Substitute ``{{name}}`` placeholders; unknown names are left as-is."""
    return _PLACEHOLDER.sub(lambda m: variables.get(m.group(1), m.group(0)), text)


def build_intent(
    invoice: Invoice,
    template: ReminderTemplate,
    recipient: str,
    as_of: date,
) -> SendIntent:
    variables = template_variables(invoice, as_of)
    return SendIntent(
        invoice_id=str(invoice.id),
        template_id=template.template_id,
        recipient=recipient,
        subject=render(template.subject, variables),
        body=render(template.body, variables),
    )
