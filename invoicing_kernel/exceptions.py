"""
Typed Exception Hierarchy for the Invoicing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (an HTTP layer, the bulk processor, a scheduler) must react to
failures precisely.  Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

The message (``str(exc)``) is the human-readable reason shown to users.  It
never contains raw driver or interpreter text; infrastructure failures are
wrapped before they leave the repository.

Example:
    try:
        payments.apply_payment(ctx, invoice_id, request)
    except OverpaymentError as e:
        return {"code": e.code, "reason": str(e), "remaining": str(e.remaining)}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InvoicingError (base)
    |
    +-- ValidationError                 malformed input, field level
    |   +-- InvalidTaxRateError
    |   +-- InvalidAmountError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |   +-- InvalidPaymentError
    |   +-- MalformedBulkRequestError
    |
    +-- NotFoundError                   absent OR outside tenant scope
    |   +-- InvoiceNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- TemplateNotFoundError
    |
    +-- BusinessRuleViolation
    |   +-- InvalidTransitionError
    |   +-- InsufficientPaymentError
    |   +-- ReasonRequiredError
    |   +-- RoleNotPermittedError
    |   +-- OverpaymentError
    |   +-- DeletionNotAllowedError
    |   +-- ReminderNotAllowedError
    |   +-- InvoiceLockedError
    |
    +-- ConcurrencyConflict             lost update detected by the repository
    |
    +-- NotificationError               gateway rejected a send intent
    |
    +-- InfrastructureError             repository / transport failure
    |   +-- UnitTimeoutError
    |
    +-- AuditError
        +-- AuditChainBrokenError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed field
                | INVALID_TAX_RATE            | Tax rate outside [0, 100]
                | INVALID_AMOUNT              | Negative/zero/non-decimal amount
                | INVALID_CURRENCY            | Not a known ISO 4217 code
                | CURRENCY_MISMATCH           | Mixed currencies in one operation
                | INVALID_PAYMENT             | Payment fails a validation rule
                | MALFORMED_BULK_REQUEST      | Bulk request shape is unusable
----------------|-----------------------------|-----------------------------------------
Not found       | INVOICE_NOT_FOUND           | Unknown id or other tenant's invoice
                | PAYMENT_NOT_FOUND           | Unknown id or other tenant's payment
                | TEMPLATE_NOT_FOUND          | Reminder template id not configured
----------------|-----------------------------|-----------------------------------------
Business rule   | INVALID_STATUS_TRANSITION   | Edge not in the workflow
                | INSUFFICIENT_PAYMENT        | -> PAID below completion ratio
                | REASON_REQUIRED             | Status demands a reason
                | ROLE_NOT_PERMITTED          | Actor role may not set status
                | OVERPAYMENT                 | Payments would exceed total
                | DELETION_NOT_ALLOWED        | Deletion eligibility failed
                | REMINDER_NOT_ALLOWED        | No further contact for status
                | INVOICE_LOCKED              | Amounts immutable after DRAFT
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENCY_CONFLICT        | Version check failed on commit
----------------|-----------------------------|-----------------------------------------
Notification    | NOTIFICATION_FAILED         | Gateway raised on submit
----------------|-----------------------------|-----------------------------------------
Infrastructure  | INFRASTRUCTURE_ERROR        | Store unavailable / driver error
                | TIMEOUT                     | Unit exceeded its deadline
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed
                | IMMUTABILITY_VIOLATION      | UPDATE/DELETE of an audit record

===============================================================================
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal


class InvoicingError(Exception):
    """
    Base exception for all invoicing errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.  ``str(exc)`` is the human-readable reason.
    """

    code: str = "INVOICING_ERROR"


# Validation errors


class ValidationError(InvoicingError):
    """Malformed input, attributed to a single field."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class InvalidTaxRateError(ValidationError):
    """Tax rate outside the closed interval [0, 100]."""

    code: str = "INVALID_TAX_RATE"

    def __init__(self, rate: Decimal | str):
        self.rate = str(rate)
        super().__init__(
            "tax_rate",
            f"Tax rate {rate} is outside the allowed range 0 to 100",
        )


class InvalidAmountError(ValidationError):
    """Amount is not a usable decimal value."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: object, message: str | None = None):
        self.value = str(value)
        super().__init__(field, message or f"Invalid amount for {field}: {value}")


class InvalidCurrencyError(ValidationError):
    """Currency code is not a known ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__("currency", f"Invalid currency code: {currency}")


class CurrencyMismatchError(ValidationError):
    """Two amounts in different currencies were combined."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            "currency",
            f"Currency mismatch: expected {expected}, got {actual}",
        )


class InvalidPaymentError(ValidationError):
    """A payment failed one of the payment validation rules."""

    code: str = "INVALID_PAYMENT"


class MalformedBulkRequestError(ValidationError):
    """Top-level bulk request shape is unusable; aborts the whole batch."""

    code: str = "MALFORMED_BULK_REQUEST"


# Not-found errors
#
# Absent and other-tenant entities raise the same error with the same
# message so callers cannot tell whether the record exists.


class NotFoundError(InvoicingError):
    """Entity absent or outside the caller's tenant scope."""

    code: str = "NOT_FOUND"


class InvoiceNotFoundError(NotFoundError):
    """Invoice not found or access denied."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: object):
        self.invoice_id = str(invoice_id)
        super().__init__("Invoice not found or access denied")


class PaymentNotFoundError(NotFoundError):
    """Payment not found or access denied."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: object):
        self.payment_id = str(payment_id)
        super().__init__("Payment not found or access denied")


class TemplateNotFoundError(NotFoundError):
    """Reminder template id is not configured."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Reminder template not found: {template_id}")


# Business-rule violations


class BusinessRuleViolation(InvoicingError):
    """A well-formed request that the invoice lifecycle rules forbid."""

    code: str = "BUSINESS_RULE_VIOLATION"


class InvalidTransitionError(BusinessRuleViolation):
    """Requested status edge is not part of the workflow."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, from_status: str, to_status: str, allowed: Sequence[str] = ()):
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = tuple(allowed)
        if self.allowed:
            hint = f"allowed: {', '.join(self.allowed)}"
        else:
            hint = f"{from_status} is a terminal status"
        super().__init__(
            f"Cannot change status from {from_status} to {to_status} ({hint})"
        )


class InsufficientPaymentError(BusinessRuleViolation):
    """Transition to PAID requested below the payment completion ratio."""

    code: str = "INSUFFICIENT_PAYMENT"

    def __init__(self, total_paid: Decimal, required: Decimal, currency: str):
        self.total_paid = total_paid
        self.required = required
        self.currency = currency
        super().__init__(
            f"Cannot mark as PAID: verified payments {total_paid} {currency} "
            f"are below the required {required} {currency}"
        )


class ReasonRequiredError(BusinessRuleViolation):
    """Target status demands an explanatory reason."""

    code: str = "REASON_REQUIRED"

    def __init__(self, to_status: str):
        self.to_status = to_status
        super().__init__(f"A reason is required to change status to {to_status}")


class RoleNotPermittedError(BusinessRuleViolation):
    """Actor role may not move an invoice to the target status."""

    code: str = "ROLE_NOT_PERMITTED"

    def __init__(self, role: str, to_status: str):
        self.role = role
        self.to_status = to_status
        super().__init__(f"Role {role} is not permitted to set status {to_status}")


class OverpaymentError(BusinessRuleViolation):
    """Payment would push cumulative payments above the invoice total."""

    code: str = "OVERPAYMENT"

    def __init__(
        self,
        invoice_id: object,
        amount: Decimal,
        remaining: Decimal,
        currency: str,
    ):
        self.invoice_id = str(invoice_id)
        self.amount = amount
        self.remaining = remaining
        self.currency = currency
        super().__init__(
            f"Payment of {amount} {currency} exceeds the outstanding "
            f"balance of {remaining} {currency}"
        )


class DeletionNotAllowedError(BusinessRuleViolation):
    """Invoice failed one or more deletion eligibility conditions."""

    code: str = "DELETION_NOT_ALLOWED"

    def __init__(self, invoice_id: object, reasons: Sequence[str]):
        self.invoice_id = str(invoice_id)
        self.reasons = tuple(reasons)
        super().__init__("; ".join(self.reasons))


class ReminderNotAllowedError(BusinessRuleViolation):
    """Invoice status forbids further customer contact."""

    code: str = "REMINDER_NOT_ALLOWED"

    def __init__(self, invoice_id: object, status: str):
        self.invoice_id = str(invoice_id)
        self.status = status
        super().__init__(f"Cannot send reminders for invoices in {status} status")


class InvoiceLockedError(BusinessRuleViolation):
    """Invoice amounts can only change while the invoice is a DRAFT."""

    code: str = "INVOICE_LOCKED"

    def __init__(self, invoice_id: object, status: str, detail: str | None = None):
        self.invoice_id = str(invoice_id)
        self.status = status
        super().__init__(
            detail or f"Invoice amounts are locked in {status} status"
        )


# Concurrency


class ConcurrencyConflict(InvoicingError):
    """Lost update detected: the entity changed since it was read."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: object):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(
            f"{entity_type} {entity_id} was modified by another transaction"
        )


# Notifications


class NotificationError(InvoicingError):
    """The notification gateway refused or failed to accept a send intent."""

    code: str = "NOTIFICATION_FAILED"

    def __init__(self, invoice_id: object, template_id: str):
        self.invoice_id = str(invoice_id)
        self.template_id = template_id
        super().__init__(f"Notification gateway failed to accept reminder {template_id}")


# Infrastructure


class InfrastructureError(InvoicingError):
    """The persistent store or another collaborator failed."""

    code: str = "INFRASTRUCTURE_ERROR"

    def __init__(self, operation: str, message: str | None = None):
        self.operation = operation
        super().__init__(message or f"Storage failure during {operation}")


class UnitTimeoutError(InfrastructureError):
    """An atomic unit exceeded its caller-supplied deadline and was rolled back."""

    code: str = "TIMEOUT"

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__("unit_of_work", "timeout")


# Audit


class AuditError(InvoicingError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_record_id: str, expected_hash: str, actual_hash: str):
        self.audit_record_id = audit_record_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_record_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


class ImmutabilityViolationError(AuditError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
