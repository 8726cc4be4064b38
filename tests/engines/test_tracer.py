"""Tests for the engine invocation tracer."""

from decimal import Decimal

from invoicing_engines.tax import TaxCalculator
from invoicing_engines.tracer import compute_input_fingerprint, traced_engine
from invoicing_kernel.domain.invoice import LineItem


class TestFingerprint:
    def test_deterministic(self):
        a = compute_input_fingerprint(("currency",), {"currency": "AED"})
        assert a == compute_input_fingerprint(("currency",), {"currency": "AED"})
        assert len(a) == 16

    def test_missing_field_counts_as_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})

    def test_sensitive_to_values(self):
        assert compute_input_fingerprint(("currency",), {"currency": "AED"}) != \
            compute_input_fingerprint(("currency",), {"currency": "USD"})


class TestTracedEngine:
    def test_trace_record_emitted(self, captured_logs):
        TaxCalculator().calculate_totals(
            line_items=[LineItem("Widget", Decimal("2"), Decimal("10.00"), Decimal("5"))],
            currency="AED",
        )
        traces = [r for r in captured_logs() if r["message"] == "INVOICING_ENGINE_TRACE"]
        assert traces[-1]["engine_name"] == "tax"
        assert traces[-1]["level"] == "DEBUG"
        assert traces[-1]["input_fingerprint"] == compute_input_fingerprint(
            ("currency",), {"currency": "AED"}
        )

    def test_result_passed_through(self):
        @traced_engine("double", "1.0")
        def double(value):
            return value * 2

        assert double(21) == 42
        assert double.__name__ == "double"
