"""Bulk action: queue a payment reminder for each invoice."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from invoicing_kernel.domain.audit import AuditAction, AuditSeverity
from invoicing_kernel.exceptions import MalformedBulkRequestError
from invoicing_kernel.repository.base import UnitOfWork
from invoicing_config.schema import InvoicingConfig
from invoicing_services.operations import queue_reminder

from invoicing_bulk.actions.base import ActionContext
from invoicing_bulk.domain.types import BulkAction, BulkOperationRequest, ItemOutcome


class QueueReminderHandler:
    """Renders the requested template and hands it to the gateway."""

    @property
    def action(self) -> BulkAction:
        return BulkAction.QUEUE_REMINDER

    @property
    def audit_action(self) -> AuditAction:
        return AuditAction.BULK_OPERATION

    @property
    def audit_severity(self) -> AuditSeverity:
        return AuditSeverity.LOW

    def validate(self, request: BulkOperationRequest, config: InvoicingConfig) -> None:
        if not request.template_id:
            raise MalformedBulkRequestError("templateId", "queue_reminder requires a templateId")
        if not config.reminders.has_template(request.template_id):
            raise MalformedBulkRequestError(
                "templateId", f"Unknown reminder template {request.template_id!r}"
            )

    def execute(self, uow: UnitOfWork, invoice_id: str, ctx: ActionContext) -> dict[str, Any]:
        intent = queue_reminder(
            uow,
            ctx.request_context,
            invoice_id,
            ctx.request.template_id,
            config=ctx.config,
            clock=ctx.clock,
            gateway=ctx.gateway,
            bulk_id=ctx.bulk_id,
        )
        return {"templateId": intent.template_id, "recipient": intent.recipient}

    def summarize(
        self, outcomes: Sequence[ItemOutcome], ctx: ActionContext
    ) -> dict[str, Any] | None:
        return None
