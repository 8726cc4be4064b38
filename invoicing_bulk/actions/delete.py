"""Bulk action: delete eligible invoices."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from invoicing_kernel.domain.audit import AuditAction, AuditSeverity
from invoicing_kernel.repository.base import UnitOfWork
from invoicing_config.schema import InvoicingConfig
from invoicing_services.operations import apply_deletion

from invoicing_bulk.actions.base import ActionContext
from invoicing_bulk.domain.types import BulkAction, BulkOperationRequest, ItemOutcome


class DeleteHandler:
    """
    Deletes an invoice when every eligibility rule holds.

    Line items, payments and reminder logs go with it via the ORM cascade.
    """

    @property
    def action(self) -> BulkAction:
        return BulkAction.DELETE

    @property
    def audit_action(self) -> AuditAction:
        return AuditAction.BULK_OPERATION

    @property
    def audit_severity(self) -> AuditSeverity:
        return AuditSeverity.HIGH

    def validate(self, request: BulkOperationRequest, config: InvoicingConfig) -> None:
        return None

    def execute(self, uow: UnitOfWork, invoice_id: str, ctx: ActionContext) -> dict[str, Any]:
        deleted = apply_deletion(
            uow,
            ctx.request_context,
            invoice_id,
            config=ctx.config,
            clock=ctx.clock,
            bulk_id=ctx.bulk_id,
        )
        return {"invoiceNumber": deleted.invoice_number, "deleted": True}

    def summarize(
        self, outcomes: Sequence[ItemOutcome], ctx: ActionContext
    ) -> dict[str, Any] | None:
        return None
