"""
Tests for the payment reconciliation engine.

Covers:
- Paid/remaining computation and completeness classification
- Overpayment rejection (all recorded payments count)
- Planned status changes, including the reversal path
- Reconciliation audit classification
- Deletion eligibility reasons
- Payment validation rules and compliance flags
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from invoicing_engines.reconciliation import (
    ComplianceFlag,
    PaymentRules,
    PaymentState,
    ReconciliationStatus,
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
from invoicing_kernel.domain.invoice import InvoiceStatus, PaymentMethod, PaymentRequest
from invoicing_kernel.domain.workflow import REVERSAL_TRANSITIONS
from invoicing_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidAmountError,
    InvalidPaymentError,
    InvoiceLockedError,
    OverpaymentError,
)
from tests.engines.conftest import AS_OF, CREATED, build_invoice, payment

S = InvoiceStatus


def request(amount: str, **kwargs) -> PaymentRequest:
    kwargs.setdefault("method", PaymentMethod.CASH)
    kwargs.setdefault("payment_date", AS_OF)
    return PaymentRequest(amount=Decimal(amount), **kwargs)


class TestReconcile:
    def test_fully_paid(self):
        result = reconcile(build_invoice("1000.00", payments=[payment("1000.00")]))
        assert result.state == PaymentState.FULLY_PAID
        assert result.is_fully_paid
        assert result.remaining == Decimal("0.00")

    def test_one_minor_unit_short_is_partial(self):
        """Remaining must be below one minor unit to count as fully paid."""
        result = reconcile(build_invoice("1000.00", payments=[payment("999.99")]))
        assert result.state == PaymentState.PARTIALLY_PAID
        assert result.remaining == Decimal("0.01")

    def test_split_payments(self):
        invoice = build_invoice("2000.00", payments=[payment("1000.00"), payment("1000.00")])
        result = reconcile(invoice)
        assert result.is_fully_paid
        assert result.payment_count == 2

    def test_unverified_payments_ignored(self):
        result = reconcile(build_invoice("1000.00", payments=[payment("1000.00", verified=False)]))
        assert result.state == PaymentState.UNPAID
        assert result.total_paid == Decimal("0")
        assert result.verified_count == 0

    def test_zero_decimal_currency_tolerance(self):
        invoice = build_invoice("1500", currency="JPY", payments=[payment("1500")])
        assert reconcile(invoice).is_fully_paid


class TestCheckOverpayment:
    def test_within_total_returns_cumulative(self):
        invoice = build_invoice("1000.00", payments=[payment("400.00")])
        assert check_overpayment(invoice, invoice.payments, Decimal("600.00")) == Decimal("1000.00")

    def test_exceeding_total_rejected(self):
        invoice = build_invoice("1000.00", payments=[payment("1000.00")])
        with pytest.raises(OverpaymentError) as exc_info:
            check_overpayment(invoice, invoice.payments, Decimal("1.00"))
        assert exc_info.value.remaining == Decimal("0.00")
        assert exc_info.value.code == "OVERPAYMENT"

    def test_unverified_payments_reserve_balance(self):
        invoice = build_invoice("1000.00", payments=[payment("600.00", verified=False)])
        with pytest.raises(OverpaymentError) as exc_info:
            check_overpayment(invoice, invoice.payments, Decimal("500.00"))
        assert exc_info.value.remaining == Decimal("400.00")

    def test_tolerance_allows_small_excess(self):
        invoice = build_invoice("1000.00", payments=[payment("1000.00")])
        total = check_overpayment(invoice, invoice.payments, Decimal("0.50"), Decimal("1.00"))
        assert total == Decimal("1000.50")


class TestPlanStatusChange:
    def test_fully_paid_sent_moves_to_paid(self):
        invoice = build_invoice("1000.00", status=S.SENT, payments=[payment("1000.00")])
        plan = plan_status_change(invoice, reconcile(invoice), AS_OF)
        assert plan.to_status == S.PAID
        assert plan.trigger == "payment_complete"

    @pytest.mark.parametrize("status", [S.OVERDUE, S.DISPUTED])
    def test_fully_paid_open_statuses_move_to_paid(self, status):
        invoice = build_invoice("1000.00", status=status, payments=[payment("1000.00")])
        assert plan_status_change(invoice, reconcile(invoice), AS_OF).to_status == S.PAID

    def test_partial_payment_plans_nothing(self):
        invoice = build_invoice("2000.00", status=S.SENT, payments=[payment("1000.00")])
        assert plan_status_change(invoice, reconcile(invoice), AS_OF) is None

    def test_already_paid_plans_nothing(self):
        invoice = build_invoice("1000.00", status=S.PAID, payments=[payment("1000.00")])
        assert plan_status_change(invoice, reconcile(invoice), AS_OF) is None

    def test_reversal_before_due_returns_to_sent(self):
        invoice = build_invoice("1000.00", status=S.PAID, due_date=date(2024, 4, 14))
        plan = plan_status_change(invoice, reconcile(invoice), AS_OF, reversal=True)
        assert plan.from_status == S.PAID
        assert plan.to_status == S.SENT
        assert plan.trigger == "payment_reversed"

    def test_reversal_after_due_returns_to_overdue(self):
        invoice = build_invoice("1000.00", status=S.PAID, due_date=date(2024, 3, 1))
        assert plan_status_change(invoice, reconcile(invoice), AS_OF, reversal=True).to_status == S.OVERDUE

    def test_reversal_on_due_date_is_not_overdue(self):
        invoice = build_invoice(status=S.PAID, due_date=AS_OF)
        assert reversal_target(invoice, AS_OF) == S.SENT

    def test_short_paid_invoice_stays_paid_without_reversal(self):
        """A PAID invoice short of its total (manual mark at the completion ratio) stays PAID."""
        invoice = build_invoice("1000.00", status=S.PAID, payments=[payment("997.00")])
        assert plan_status_change(invoice, reconcile(invoice), AS_OF) is None

    def test_reversal_targets_come_from_workflow_edges(self):
        targets = {t.to_state for t in REVERSAL_TRANSITIONS}
        before_due = build_invoice(status=S.PAID, due_date=date(2024, 4, 14))
        past_due = build_invoice(status=S.PAID, due_date=date(2024, 3, 1))
        assert {reversal_target(before_due, AS_OF), reversal_target(past_due, AS_OF)} == targets


class TestAuditReconciliation:
    @pytest.mark.parametrize(
        "paid,expected",
        [
            ("1000.00", ReconciliationStatus.RECONCILED),
            ("1000.01", ReconciliationStatus.OVERPAID),
            ("999.99", ReconciliationStatus.UNDERPAID),
        ],
    )
    def test_classification(self, paid, expected):
        audit = audit_reconciliation(build_invoice("1000.00", payments=[payment(paid)]))
        assert audit.status == expected
        assert audit.discrepancy == Decimal(paid) - Decimal("1000.00")

    def test_idempotent(self):
        invoice = build_invoice("1000.00", payments=[payment("250.00")])
        assert audit_reconciliation(invoice) == audit_reconciliation(invoice)


class TestDeletionEligibility:
    def test_fresh_draft_is_eligible(self):
        eligibility = check_deletion_eligibility(build_invoice(status=S.DRAFT), as_of=CREATED)
        assert eligibility.eligible
        assert eligibility.reasons == ()

    def test_sent_invoice_rejected(self):
        eligibility = check_deletion_eligibility(build_invoice(status=S.SENT), as_of=CREATED)
        assert not eligibility.eligible
        assert "only DRAFT invoices" in eligibility.reasons[0]

    def test_every_failing_condition_reported(self):
        invoice = build_invoice(
            status=S.SENT,
            payments=[payment("10.00")],
            tax_finalized_at=CREATED,
        )
        eligibility = check_deletion_eligibility(invoice, as_of=CREATED + timedelta(days=31))
        assert len(eligibility.reasons) == 4
        assert any("recorded payment" in r for r in eligibility.reasons)
        assert any("more than 30 days" in r for r in eligibility.reasons)
        assert any("finalized tax" in r for r in eligibility.reasons)

    def test_window_is_inclusive(self):
        as_of = CREATED + timedelta(days=30)
        assert check_deletion_eligibility(build_invoice(status=S.DRAFT), as_of=as_of).eligible

    def test_window_is_configurable(self):
        as_of = datetime(2024, 3, 20, 9, 0, tzinfo=timezone.utc)
        eligibility = check_deletion_eligibility(
            build_invoice(status=S.DRAFT), as_of=as_of, window_days=2
        )
        assert eligibility.reasons == ("Cannot delete: invoice was created more than 2 days ago",)


class TestValidatePayment:
    @pytest.mark.parametrize("status", [S.DRAFT, S.CANCELLED, S.WRITTEN_OFF])
    def test_locked_statuses_rejected(self, status):
        with pytest.raises(InvoiceLockedError):
            validate_payment(request("10.00"), build_invoice(status=status), AS_OF)

    def test_paid_invoice_passes_validation(self):
        """A PAID invoice fails later, as an overpayment."""
        assert validate_payment(request("1.00"), build_invoice(status=S.PAID), AS_OF) == Decimal("1.00")

    def test_currency_mismatch(self):
        with pytest.raises(CurrencyMismatchError):
            validate_payment(request("10.00", currency="USD"), build_invoice(), AS_OF)

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_amount(self, amount):
        with pytest.raises(InvalidAmountError):
            validate_payment(request(amount), build_invoice(), AS_OF)

    def test_sub_minor_unit_precision_rejected(self):
        with pytest.raises(InvalidAmountError):
            validate_payment(request("10.005"), build_invoice(), AS_OF)

    def test_future_date_rejected(self):
        with pytest.raises(InvalidPaymentError) as exc_info:
            validate_payment(
                request("10.00", payment_date=AS_OF + timedelta(days=1)), build_invoice(), AS_OF
            )
        assert exc_info.value.field == "payment_date"

    def test_bank_transfer_requires_reference(self):
        with pytest.raises(InvalidPaymentError) as exc_info:
            validate_payment(
                request("10.00", method=PaymentMethod.BANK_TRANSFER, reference="  "),
                build_invoice(),
                AS_OF,
            )
        assert exc_info.value.field == "reference"

    def test_maximum_amount(self):
        rules = PaymentRules(maximum_amount=Decimal("100"))
        with pytest.raises(InvalidPaymentError):
            validate_payment(request("100.01"), build_invoice(), AS_OF, rules)


class TestComplianceAndTimeline:
    def test_flags(self):
        invoice = build_invoice("150000.00", payments=[payment("150000.00")])
        flags = compliance_flags(reconcile(invoice), PaymentMethod.CASH, Decimal("150000.00"))
        assert flags == (
            ComplianceFlag.FULLY_PAID,
            ComplianceFlag.CASH_PAYMENT,
            ComplianceFlag.LARGE_PAYMENT,
        )

    def test_no_flags_for_small_card_payment(self):
        invoice = build_invoice("1000.00", payments=[payment("10.00")])
        assert compliance_flags(reconcile(invoice), PaymentMethod.CARD, Decimal("10.00")) == ()

    def test_timeline_in_date_order_with_running_totals(self):
        invoice = build_invoice(
            "1000.00",
            payments=[
                payment("300.00", on=date(2024, 3, 10)),
                payment("200.00", on=date(2024, 3, 1)),
                payment("100.00", on=date(2024, 3, 5), verified=False),
            ],
        )
        timeline = payment_timeline(invoice)
        assert [e.amount for e in timeline] == [Decimal("200.00"), Decimal("300.00")]
        assert timeline[-1].cumulative_paid == Decimal("500.00")
        assert timeline[-1].remaining == Decimal("500.00")


amounts = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("5000.00"), places=2)


class TestReconciliationProperties:
    @settings(max_examples=300, deadline=None)
    @given(
        total=amounts,
        paid=st.lists(st.tuples(amounts, st.booleans()), max_size=6),
    )
    def test_balance_identity_and_idempotence(self, total, paid):
        invoice = build_invoice(str(total), payments=[payment(str(a), verified=v) for a, v in paid])

        first = reconcile(invoice)
        assert first == reconcile(invoice)
        assert first.total_paid + first.remaining == invoice.total_amount
        assert first.is_fully_paid == (first.remaining < Decimal("0.01"))
        assert audit_reconciliation(invoice).discrepancy == -first.remaining
