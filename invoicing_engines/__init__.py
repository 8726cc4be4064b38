"""
Module: invoicing_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for the services and
    the bulk processor.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import invoicing_kernel domain types (and sibling engines).
    MUST NOT import invoicing_services, invoicing_bulk or invoicing_config.

Invariants enforced:
    - Engines never call ``datetime.now()`` or ``date.today()``; the
      caller passes ``as_of``.
    - Decimal-only arithmetic for every monetary amount.
    - Identical inputs always produce identical outputs.

Usage:
    from invoicing_engines import TaxCalculator, validate_transition, reconcile
"""

from invoicing_kernel.logging_config import get_logger

logger = get_logger("engines")

from invoicing_engines.aging import (
    STANDARD_BUCKETS,
    AgeBucket,
    calculate_due_date,
    classify,
    days_overdue,
    is_overdue,
)
from invoicing_engines.reconciliation import (
    ComplianceFlag,
    DeletionEligibility,
    PaymentRules,
    PaymentState,
    PlannedTransition,
    ReconciliationAudit,
    ReconciliationResult,
    ReconciliationStatus,
    TimelineEntry,
    audit_reconciliation,
    check_deletion_eligibility,
    check_overpayment,
    compliance_flags,
    payment_timeline,
    plan_status_change,
    reconcile,
    reversal_target,
    validate_payment,
)
from invoicing_engines.tax import (
    InvoiceTotals,
    TaxBreakdownLine,
    TaxCalculator,
    TaxCategory,
    TaxComputation,
    calculate_tax,
    calculate_totals,
    format_tax_id,
    tax_breakdown,
    validate_tax_id,
    validate_tax_rate,
)
from invoicing_engines.tracer import traced_engine
from invoicing_engines.transitions import (
    TransitionDecision,
    TransitionPolicy,
    allowed_targets,
    check_transition,
    is_terminal,
    validate_transition,
)

__all__ = [
    "STANDARD_BUCKETS",
    "AgeBucket",
    "ComplianceFlag",
    "DeletionEligibility",
    "InvoiceTotals",
    "PaymentRules",
    "PaymentState",
    "PlannedTransition",
    "ReconciliationAudit",
    "ReconciliationResult",
    "ReconciliationStatus",
    "TaxBreakdownLine",
    "TaxCalculator",
    "TaxCategory",
    "TaxComputation",
    "TimelineEntry",
    "TransitionDecision",
    "TransitionPolicy",
    "allowed_targets",
    "audit_reconciliation",
    "calculate_due_date",
    "calculate_tax",
    "calculate_totals",
    "check_deletion_eligibility",
    "check_overpayment",
    "check_transition",
    "classify",
    "compliance_flags",
    "days_overdue",
    "format_tax_id",
    "is_overdue",
    "is_terminal",
    "payment_timeline",
    "plan_status_change",
    "reconcile",
    "reversal_target",
    "tax_breakdown",
    "traced_engine",
    "validate_payment",
    "validate_tax_id",
    "validate_tax_rate",
    "validate_transition",
]
