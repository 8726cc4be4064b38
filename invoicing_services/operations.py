"""
Unit-level invoice operations.

Each function runs inside a caller-supplied UnitOfWork and performs one
complete mutation plus its audit record.  The single-item services wrap
them in their own unit; the bulk action handlers call them once per item,
each in a separate unit, so both paths apply identical rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from invoicing_kernel.domain.audit import AuditAction, AuditEntry
from invoicing_kernel.domain.clock import Clock
from invoicing_kernel.domain.context import RequestContext
from invoicing_kernel.domain.invoice import Invoice, InvoiceStatus
from invoicing_kernel.exceptions import (
    DeletionNotAllowedError,
    NotificationError,
    ReminderNotAllowedError,
    ValidationError,
)
from invoicing_kernel.logging_config import LogContext, get_logger
from invoicing_kernel.repository.base import UnitOfWork
from invoicing_config.schema import InvoicingConfig
from invoicing_engines.reconciliation import check_deletion_eligibility
from invoicing_engines.transitions import validate_transition
from invoicing_services.notifications import NotificationGateway, SendIntent, build_intent

logger = get_logger("services.operations")


@dataclass(frozen=True)
class StatusChangeResult:
    """Outcome of an applied status transition."""

    invoice_id: UUID
    from_status: InvoiceStatus
    to_status: InvoiceStatus
    applied_at: datetime
    invoice: Invoice

    def to_dict(self) -> dict[str, str]:
        return {
            "invoiceId": str(self.invoice_id),
            "from": self.from_status.value,
            "to": self.to_status.value,
            "appliedAt": self.applied_at.isoformat(),
        }


def bind_request(ctx: RequestContext, **fields: object):
    """LogContext scope carrying the caller's identity."""
    return LogContext.bind(
        correlation_id=ctx.correlation_id,
        tenant_id=ctx.tenant_id,
        actor_id=ctx.actor_id,
        **fields,
    )


def apply_status_change(
    uow: UnitOfWork,
    ctx: RequestContext,
    invoice_id: UUID | str,
    target: InvoiceStatus,
    *,
    config: InvoicingConfig,
    clock: Clock,
    reason: str | None = None,
    force_override: bool = False,
    trigger: str = "manual",
    bulk_id: str | None = None,
) -> StatusChangeResult:
    """
    Validate and apply one transition with its audit record.

    The first move to SENT also finalizes the invoice's tax amount.
    """
    invoice = uow.get_invoice(invoice_id, ctx.tenant_id)
    decision = validate_transition(
        invoice,
        target,
        reason=reason,
        actor_role=ctx.actor_role,
        force_override=force_override,
        policy=config.transition_policy,
    )
    updated = uow.update_status(invoice.id, ctx.tenant_id, decision.to_status, ctx.actor_id)
    if decision.to_status == InvoiceStatus.SENT and updated.tax_finalized_at is None:
        updated = uow.mark_tax_finalized(invoice.id, ctx.tenant_id, clock.now(), ctx.actor_id)

    uow.audit.record_status_changed(
        ctx.tenant_id,
        invoice.id,
        ctx.actor_id,
        before=invoice.to_snapshot(),
        after=updated.to_snapshot(),
        reason=reason,
        trigger=trigger,
        bulk_id=bulk_id,
    )
    logger.info(
        "invoice_status_changed",
        extra={
            "invoice_id": str(invoice.id),
            "from_status": invoice.status.value,
            "to_status": decision.to_status.value,
            "trigger": trigger,
        },
    )
    return StatusChangeResult(
        invoice_id=invoice.id,
        from_status=invoice.status,
        to_status=decision.to_status,
        applied_at=clock.now(),
        invoice=updated,
    )


def apply_deletion(
    uow: UnitOfWork,
    ctx: RequestContext,
    invoice_id: UUID | str,
    *,
    config: InvoicingConfig,
    clock: Clock,
    bulk_id: str | None = None,
) -> Invoice:
    """
    Delete one invoice if every eligibility condition holds.

    Returns the snapshot taken before deletion.

    Raises:
        DeletionNotAllowedError: with one reason per failed condition.
    """
    invoice = uow.get_invoice(invoice_id, ctx.tenant_id)
    eligibility = check_deletion_eligibility(
        invoice,
        as_of=clock.now(),
        window_days=config.deletion_window_days,
    )
    if not eligibility.eligible:
        raise DeletionNotAllowedError(invoice.id, eligibility.reasons)

    uow.audit.record_invoice_deleted(
        ctx.tenant_id,
        invoice.id,
        ctx.actor_id,
        before=invoice.to_snapshot(),
        bulk_id=bulk_id,
    )
    uow.delete_invoice(invoice.id, ctx.tenant_id)
    logger.info(
        "invoice_deleted",
        extra={"invoice_id": str(invoice.id), "invoice_number": invoice.invoice_number},
    )
    return invoice


def queue_reminder(
    uow: UnitOfWork,
    ctx: RequestContext,
    invoice_id: UUID | str,
    template_id: str,
    *,
    config: InvoicingConfig,
    clock: Clock,
    gateway: NotificationGateway,
    bulk_id: str | None = None,
) -> SendIntent:
    """
    Hand a rendered reminder to the notification gateway and log it.

    Raises:
        ReminderNotAllowedError: status forbids further contact.
        ValidationError: the invoice has no customer email.
        TemplateNotFoundError: unknown ``template_id``.
        NotificationError: the gateway raised; the unit rolls back.
    """
    template = config.reminders.get_template(template_id)
    invoice = uow.get_invoice(invoice_id, ctx.tenant_id)
    if invoice.status in config.reminders.blocked_statuses:
        raise ReminderNotAllowedError(invoice.id, invoice.status.value)
    if not invoice.customer_email:
        raise ValidationError("customer_email", "Invoice has no customer email address")

    intent = build_intent(invoice, template, invoice.customer_email, clock.today())
    uow.add_reminder_log(
        invoice_id=invoice.id,
        tenant_id=ctx.tenant_id,
        template_id=template.template_id,
        recipient=intent.recipient,
        subject=intent.subject,
        actor_id=ctx.actor_id,
    )
    uow.audit.append(ctx.tenant_id, _reminder_entry(ctx, invoice, template.template_id, bulk_id))
    try:
        gateway.submit(intent)
    except Exception as exc:
        logger.warning(
            "reminder_submit_failed",
            extra={"invoice_id": str(invoice.id), "error_type": type(exc).__name__},
        )
        raise NotificationError(invoice.id, template.template_id) from exc
    logger.info(
        "reminder_queued",
        extra={"invoice_id": str(invoice.id), "template_id": template.template_id},
    )
    return intent


def _reminder_entry(
    ctx: RequestContext, invoice: Invoice, template_id: str, bulk_id: str | None
) -> AuditEntry:
    metadata: dict[str, object] = {
        "template_id": template_id,
        "reminder_number": invoice.reminder_count + 1,
    }
    if bulk_id is not None:
        metadata["bulk_id"] = bulk_id
    return AuditEntry(
        entity_type="Invoice",
        entity_id=str(invoice.id),
        action=AuditAction.REMINDER_QUEUED,
        actor_id=ctx.actor_id,
        metadata=metadata,
    )
