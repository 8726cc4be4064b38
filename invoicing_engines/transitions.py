"""
Module: invoicing_engines.transitions
Responsibility:
    Decide whether an invoice may move from its current status to a target
    status.  Encodes the invoice workflow's edges and evaluates its guards
    (payment completeness, reason, actor role).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Never mutates the invoice.

Invariants enforced:
    - Only edges declared in INVOICE_WORKFLOW are accepted.
    - Terminal statuses (PAID, WRITTEN_OFF, CANCELLED) accept no request.
    - -> PAID requires verified payments >= completion ratio * total.

Failure modes:
    - InvalidTransitionError, InsufficientPaymentError, ReasonRequiredError,
      RoleNotPermittedError (all BusinessRuleViolation).

Usage:
    decision = check_transition(invoice, InvoiceStatus.PAID, policy=policy)
    if not decision.allowed:
        print(decision.code, decision.reason)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal

from invoicing_kernel.domain.currency import quantize_amount
from invoicing_kernel.domain.invoice import Invoice, InvoiceStatus
from invoicing_kernel.domain.workflow import (
    INVOICE_WORKFLOW,
    PAYMENT_COMPLETE,
    PRIVILEGED_ACTOR,
    REASON_PROVIDED,
    Guard,
    Transition,
)
from invoicing_kernel.exceptions import (
    BusinessRuleViolation,
    InsufficientPaymentError,
    InvalidTransitionError,
    ReasonRequiredError,
    RoleNotPermittedError,
)
from invoicing_kernel.logging_config import get_logger

logger = get_logger("engines.transitions")

DEFAULT_COMPLETION_RATIO = Decimal("0.99")


@dataclass(frozen=True)
class TransitionPolicy:
    """
    Tunable guard parameters.

    ``payment_completion_ratio`` is the share of the total that verified
    payments must reach before a manual transition to PAID is accepted.
    """

    payment_completion_ratio: Decimal = DEFAULT_COMPLETION_RATIO
    reason_required_for: frozenset[InvoiceStatus] = field(
        default_factory=lambda: frozenset({InvoiceStatus.WRITTEN_OFF, InvoiceStatus.DISPUTED})
    )
    role_gated_statuses: frozenset[InvoiceStatus] = field(
        default_factory=lambda: frozenset({InvoiceStatus.WRITTEN_OFF, InvoiceStatus.DISPUTED})
    )
    privileged_roles: frozenset[str] = field(
        default_factory=lambda: frozenset({"ADMIN", "FINANCE"})
    )

    def __post_init__(self) -> None:
        if not (Decimal("0") < self.payment_completion_ratio <= Decimal("1")):
            raise ValueError(
                f"payment_completion_ratio must be in (0, 1], got {self.payment_completion_ratio}"
            )


DEFAULT_POLICY = TransitionPolicy()


@dataclass(frozen=True)
class TransitionDecision:
    """Outcome of evaluating a transition request."""

    from_status: InvoiceStatus
    to_status: InvoiceStatus
    allowed: bool
    transition: Transition | None = None
    code: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class _GuardInput:
    invoice: Invoice
    target: InvoiceStatus
    reason: str | None
    actor_role: str | None
    force_override: bool
    policy: TransitionPolicy


def _check_payment_complete(ctx: _GuardInput) -> None:
    invoice = ctx.invoice
    required = invoice.total_amount * ctx.policy.payment_completion_ratio
    if invoice.total_paid < required:
        raise InsufficientPaymentError(
            total_paid=invoice.total_paid,
            required=quantize_amount(required, invoice.currency),
            currency=invoice.currency,
        )


def _check_reason_provided(ctx: _GuardInput) -> None:
    if ctx.target not in ctx.policy.reason_required_for:
        return
    if ctx.reason is None or not ctx.reason.strip():
        raise ReasonRequiredError(ctx.target.value)


def _check_privileged_actor(ctx: _GuardInput) -> None:
    if ctx.actor_role is None or ctx.force_override:
        return
    if ctx.target not in ctx.policy.role_gated_statuses:
        return
    if ctx.actor_role.upper() not in ctx.policy.privileged_roles:
        raise RoleNotPermittedError(ctx.actor_role, ctx.target.value)


_GUARD_CHECKS: dict[str, Callable[[_GuardInput], None]] = {
    PAYMENT_COMPLETE.name: _check_payment_complete,
    REASON_PROVIDED.name: _check_reason_provided,
    PRIVILEGED_ACTOR.name: _check_privileged_actor,
}


def is_terminal(status: InvoiceStatus) -> bool:
    return status in INVOICE_WORKFLOW.terminal_states


def allowed_targets(status: InvoiceStatus) -> tuple[InvoiceStatus, ...]:
    """Statuses reachable from ``status`` by a transition request."""
    return INVOICE_WORKFLOW.targets_from(status)


def validate_transition(
    invoice: Invoice,
    target: InvoiceStatus,
    *,
    reason: str | None = None,
    actor_role: str | None = None,
    force_override: bool = False,
    policy: TransitionPolicy = DEFAULT_POLICY,
) -> TransitionDecision:
    """
    Validate moving ``invoice`` to ``target``.

    Returns an allowed TransitionDecision or raises the specific
    BusinessRuleViolation.  Pure: reads the invoice snapshot only.
    """
    target = InvoiceStatus(target)
    current = invoice.status
    transition = INVOICE_WORKFLOW.find(current, target)
    if transition is None:
        raise InvalidTransitionError(
            current.value,
            target.value,
            [s.value for s in allowed_targets(current)],
        )

    ctx = _GuardInput(
        invoice=invoice,
        target=target,
        reason=reason,
        actor_role=actor_role,
        force_override=force_override,
        policy=policy,
    )
    guard: Guard
    for guard in transition.guards:
        _GUARD_CHECKS[guard.name](ctx)

    return TransitionDecision(
        from_status=current,
        to_status=target,
        allowed=True,
        transition=transition,
    )


def check_transition(
    invoice: Invoice,
    target: InvoiceStatus,
    *,
    reason: str | None = None,
    actor_role: str | None = None,
    force_override: bool = False,
    policy: TransitionPolicy = DEFAULT_POLICY,
) -> TransitionDecision:
    """Non-raising form of ``validate_transition``."""
    try:
        return validate_transition(
            invoice,
            target,
            reason=reason,
            actor_role=actor_role,
            force_override=force_override,
            policy=policy,
        )
    except BusinessRuleViolation as exc:
        logger.debug(
            "transition_rejected",
            extra={
                "invoice_id": str(invoice.id),
                "from_status": invoice.status.value,
                "to_status": InvoiceStatus(target).value,
                "code": exc.code,
            },
        )
        return TransitionDecision(
            from_status=invoice.status,
            to_status=InvoiceStatus(target),
            allowed=False,
            code=exc.code,
            reason=str(exc),
        )
