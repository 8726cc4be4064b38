"""Bulk action: move each invoice to one target status."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from invoicing_kernel.domain.audit import AuditAction, AuditSeverity
from invoicing_kernel.exceptions import MalformedBulkRequestError
from invoicing_kernel.repository.base import UnitOfWork
from invoicing_config.schema import InvoicingConfig
from invoicing_services.operations import apply_status_change

from invoicing_bulk.actions.base import ActionContext
from invoicing_bulk.domain.types import BulkAction, BulkOperationRequest, ItemOutcome


class UpdateStatusHandler:
    """Applies ``request.status`` through the transition engine."""

    @property
    def action(self) -> BulkAction:
        return BulkAction.UPDATE_STATUS

    @property
    def audit_action(self) -> AuditAction:
        return AuditAction.BULK_OPERATION

    @property
    def audit_severity(self) -> AuditSeverity:
        return AuditSeverity.MEDIUM

    def validate(self, request: BulkOperationRequest, config: InvoicingConfig) -> None:
        if request.status is None:
            raise MalformedBulkRequestError("status", "update_status requires a target status")

    def execute(self, uow: UnitOfWork, invoice_id: str, ctx: ActionContext) -> dict[str, Any]:
        request = ctx.request
        result = apply_status_change(
            uow,
            ctx.request_context,
            invoice_id,
            request.status,
            config=ctx.config,
            clock=ctx.clock,
            reason=request.reason,
            force_override=request.force_override,
            trigger=request.trigger,
            bulk_id=ctx.bulk_id,
        )
        return {"from": result.from_status.value, "to": result.to_status.value}

    def summarize(
        self, outcomes: Sequence[ItemOutcome], ctx: ActionContext
    ) -> dict[str, Any] | None:
        return None
