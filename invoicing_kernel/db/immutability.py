"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Services enforce the lifecycle rules, but any code holding a Session could
still flush a forbidden change.  These listeners fire BEFORE the SQL reaches
the database and abort the flush:

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError /
         |                                   InvoiceLockedError
         v
    [before_delete event] --> _check_*_delete()
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable                     | Fields
----------------|------------------------------------|--------------------------
AuditEvent      | ALWAYS (from creation)             | all, and no DELETE
Invoice         | once status was not DRAFT          | subtotal, tax_amount,
                |                                    | total_amount, currency
Payment         | ALWAYS (from creation)             | all except verified and
                |                                    | update metadata

===============================================================================
USAGE
===============================================================================

    from invoicing_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent; the repository calls it

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from invoicing_kernel.domain.invoice import InvoiceStatus
from invoicing_kernel.exceptions import ImmutabilityViolationError, InvoiceLockedError
from invoicing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

INVOICE_AMOUNT_FIELDS = frozenset({"subtotal", "tax_amount", "total_amount", "currency"})

PAYMENT_MUTABLE_FIELDS = frozenset({"verified", "updated_at", "updated_by"})


def _check_audit_event_immutability(mapper, connection, target):
    """Prevent any updates to AuditEvent records."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "AuditEvent",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit records are immutable and cannot be modified",
    )


def _check_audit_event_delete(mapper, connection, target):
    """Prevent deletion of AuditEvent records."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "AuditEvent",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit records cannot be deleted",
    )


def _check_invoice_amounts(mapper, connection, target):
    """
    Block amount changes on invoices that had already left DRAFT.

    "Had left" is judged on the committed status: a flush that moves DRAFT
    to SENT may still carry the final amounts, but no later flush may.
    """
    status_history = get_history(target, "status")
    if status_history.deleted:
        previous = status_history.deleted[0]
    else:
        previous = target.status
    if previous == InvoiceStatus.DRAFT or previous == InvoiceStatus.DRAFT.value:
        return

    changed = [
        key for key in INVOICE_AMOUNT_FIELDS
        if get_history(target, key).has_changes()
    ]
    if changed:
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "Invoice",
                "entity_id": str(target.id),
                "operation": "UPDATE",
                "fields": sorted(changed),
            },
        )
        raise InvoiceLockedError(
            target.id,
            str(previous.value if hasattr(previous, "value") else previous),
            f"Cannot modify {', '.join(sorted(changed))} once the invoice has left DRAFT",
        )


def _check_payment_immutability(mapper, connection, target):
    """Payments may only flip ``verified`` after insert."""
    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in PAYMENT_MUTABLE_FIELDS or attr.key == "invoice":
            continue
        if attr.history.has_changes():
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Payment",
                    "entity_id": str(target.id),
                    "operation": "UPDATE",
                    "field": attr.key,
                },
            )
            raise ImmutabilityViolationError(
                entity_type="Payment",
                entity_id=str(target.id),
                reason=f"Cannot modify field '{attr.key}' on a recorded payment",
            )


def _listeners():
    from invoicing_kernel.models.audit_event import AuditEvent
    from invoicing_kernel.models.invoice import InvoiceModel, PaymentModel

    return (
        (AuditEvent, "before_update", _check_audit_event_immutability),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (InvoiceModel, "before_update", _check_invoice_amounts),
        (PaymentModel, "before_update", _check_payment_immutability),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners.  Safe to call more than once."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
