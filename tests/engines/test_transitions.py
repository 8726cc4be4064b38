"""
Tests for the status transition validator.

Covers:
- Exhaustive (from, to) grid against the workflow table
- Payment completion guard for -> PAID
- Reason and role guards for write-off and dispute
- Non-raising check_transition
"""

from decimal import Decimal
from itertools import product

import pytest

from invoicing_engines.transitions import (
    TransitionPolicy,
    allowed_targets,
    check_transition,
    is_terminal,
    validate_transition,
)
from invoicing_kernel.domain.invoice import InvoiceStatus
from invoicing_kernel.exceptions import (
    InsufficientPaymentError,
    InvalidTransitionError,
    ReasonRequiredError,
    RoleNotPermittedError,
)
from tests.engines.conftest import build_invoice, payment

S = InvoiceStatus

EDGES = {
    (S.DRAFT, S.SENT),
    (S.DRAFT, S.WRITTEN_OFF),
    (S.DRAFT, S.CANCELLED),
    (S.SENT, S.PAID),
    (S.SENT, S.OVERDUE),
    (S.SENT, S.DISPUTED),
    (S.SENT, S.WRITTEN_OFF),
    (S.OVERDUE, S.PAID),
    (S.OVERDUE, S.DISPUTED),
    (S.OVERDUE, S.WRITTEN_OFF),
    (S.DISPUTED, S.PAID),
    (S.DISPUTED, S.OVERDUE),
    (S.DISPUTED, S.SENT),
    (S.DISPUTED, S.WRITTEN_OFF),
}


class TestTransitionGrid:
    @pytest.mark.parametrize(
        "current,target",
        list(product(InvoiceStatus, InvoiceStatus)),
        ids=lambda s: s.value,
    )
    def test_every_pair(self, current, target):
        """Accepted exactly when the edge is in the table (all guards satisfied)."""
        invoice = build_invoice("1000.00", status=current, payments=[payment("1000.00")])
        kwargs = {"reason": "Customer confirmed", "actor_role": "ADMIN"}

        if (current, target) in EDGES:
            decision = validate_transition(invoice, target, **kwargs)
            assert decision.allowed
            assert decision.from_status == current
            assert decision.to_status == target
        else:
            with pytest.raises(InvalidTransitionError):
                validate_transition(invoice, target, **kwargs)

    @pytest.mark.parametrize("status", [S.PAID, S.WRITTEN_OFF, S.CANCELLED])
    def test_terminal_statuses_have_no_targets(self, status):
        assert is_terminal(status)
        assert allowed_targets(status) == ()

    def test_rejection_lists_allowed_targets(self):
        invoice = build_invoice(status=S.DRAFT)
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition(invoice, S.PAID)
        assert exc_info.value.allowed == ("SENT", "WRITTEN_OFF", "CANCELLED")
        assert "DRAFT" in str(exc_info.value)


class TestPaymentCompleteGuard:
    def test_below_ratio_rejected(self):
        invoice = build_invoice("1000.00", payments=[payment("989.99")])
        with pytest.raises(InsufficientPaymentError) as exc_info:
            validate_transition(invoice, S.PAID)
        assert exc_info.value.required == Decimal("990.00")

    def test_at_ratio_accepted(self):
        """99% of the total is enough for a manual move to PAID."""
        invoice = build_invoice("1000.00", payments=[payment("990.00")])
        assert validate_transition(invoice, S.PAID).allowed

    def test_unverified_payments_do_not_count(self):
        invoice = build_invoice("1000.00", payments=[payment("1000.00", verified=False)])
        with pytest.raises(InsufficientPaymentError):
            validate_transition(invoice, S.PAID)

    def test_ratio_is_configurable(self):
        invoice = build_invoice("1000.00", payments=[payment("990.00")])
        strict = TransitionPolicy(payment_completion_ratio=Decimal("1"))
        with pytest.raises(InsufficientPaymentError):
            validate_transition(invoice, S.PAID, policy=strict)

    def test_ratio_must_be_positive_fraction(self):
        with pytest.raises(ValueError):
            TransitionPolicy(payment_completion_ratio=Decimal("1.5"))


class TestReasonAndRoleGuards:
    @pytest.mark.parametrize("target", [S.WRITTEN_OFF, S.DISPUTED])
    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, target, reason):
        invoice = build_invoice(status=S.SENT)
        with pytest.raises(ReasonRequiredError):
            validate_transition(invoice, target, reason=reason)

    def test_unprivileged_role_rejected(self):
        invoice = build_invoice(status=S.SENT)
        with pytest.raises(RoleNotPermittedError):
            validate_transition(invoice, S.WRITTEN_OFF, reason="Bad debt", actor_role="CLERK")

    def test_role_check_is_case_insensitive(self):
        invoice = build_invoice(status=S.SENT)
        decision = validate_transition(
            invoice, S.WRITTEN_OFF, reason="Bad debt", actor_role="finance"
        )
        assert decision.allowed

    def test_force_override_skips_role_check(self):
        invoice = build_invoice(status=S.OVERDUE)
        decision = validate_transition(
            invoice, S.DISPUTED, reason="Escalated", actor_role="CLERK", force_override=True
        )
        assert decision.allowed

    def test_absent_role_is_not_checked(self):
        invoice = build_invoice(status=S.SENT)
        assert validate_transition(invoice, S.DISPUTED, reason="Quality issue").allowed

    def test_ungated_targets_ignore_role(self):
        invoice = build_invoice(status=S.DRAFT)
        assert validate_transition(invoice, S.SENT, actor_role="CLERK").allowed


class TestCheckTransition:
    def test_rejection_returned_not_raised(self):
        invoice = build_invoice(status=S.SENT, payments=[payment("100.00")])
        decision = check_transition(invoice, S.PAID)
        assert not decision.allowed
        assert decision.code == "INSUFFICIENT_PAYMENT"
        assert decision.reason

    def test_validator_never_mutates(self):
        invoice = build_invoice(status=S.SENT)
        check_transition(invoice, S.OVERDUE)
        assert invoice.status == S.SENT
