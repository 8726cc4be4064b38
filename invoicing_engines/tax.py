"""
Tax Engine - invoice totals, VAT and tax registration numbers.

Pure functions with no I/O - tax rates arrive on the line items.

Rounding policy:
    Line products are summed unrounded.  Subtotal and tax are each rounded
    half-up to the currency's minor unit once, at aggregation, and the grand
    total is their sum, so ``subtotal + tax_amount == grand_total`` exactly.

Usage:
    from invoicing_engines.tax import TaxCalculator
    from invoicing_kernel.domain.invoice import LineItem
    from decimal import Decimal

    totals = TaxCalculator().calculate_totals(
        line_items=[LineItem("Consulting", Decimal("10"), Decimal("100.00"), Decimal("5"))],
        currency="AED",
    )
    print(totals.grand_total)  # Decimal("1050.00")
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from invoicing_kernel.domain.currency import CurrencyRegistry, quantize_amount
from invoicing_kernel.domain.invoice import LineItem
from invoicing_kernel.domain.values import to_decimal
from invoicing_kernel.exceptions import InvalidAmountError, InvalidTaxRateError, ValidationError
from invoicing_kernel.logging_config import get_logger
from invoicing_engines.tracer import traced_engine

logger = get_logger("engines.tax")

MIN_TAX_RATE = Decimal("0")
MAX_TAX_RATE = Decimal("100")
_HUNDRED = Decimal("100")

TAX_ID_LENGTH = 15


class TaxCategory(str, Enum):
    """VAT treatment of a supply."""

    STANDARD = "STANDARD"
    ZERO_RATED = "ZERO_RATED"
    EXEMPT = "EXEMPT"


TAX_CATEGORY_RATES: dict[TaxCategory, Decimal] = {
    TaxCategory.STANDARD: Decimal("5"),
    TaxCategory.ZERO_RATED: Decimal("0"),
    TaxCategory.EXEMPT: Decimal("0"),
}


@dataclass(frozen=True)
class InvoiceTotals:
    """Rounded invoice totals; ``grand_total == subtotal + tax_amount``."""

    currency: str
    subtotal: Decimal
    tax_amount: Decimal
    grand_total: Decimal
    line_count: int


@dataclass(frozen=True)
class TaxComputation:
    """Result of taxing a single amount."""

    net_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    rate: Decimal
    inclusive: bool


@dataclass(frozen=True)
class TaxBreakdownLine:
    """Taxable base and tax for one rate."""

    rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    line_count: int


def validate_tax_rate(rate: Decimal | str | int) -> Decimal:
    """Return ``rate`` as Decimal; raise InvalidTaxRateError outside [0, 100]."""
    value = to_decimal(rate, "tax_rate")
    if value < MIN_TAX_RATE or value > MAX_TAX_RATE:
        raise InvalidTaxRateError(value)
    return value


def _validate_line(index: int, item: LineItem) -> None:
    quantity = to_decimal(item.quantity, f"line_items[{index}].quantity")
    unit_price = to_decimal(item.unit_price, f"line_items[{index}].unit_price")
    if quantity < 0:
        raise InvalidAmountError(
            f"line_items[{index}].quantity", quantity, "Quantity cannot be negative"
        )
    if unit_price < 0:
        raise InvalidAmountError(
            f"line_items[{index}].unit_price", unit_price, "Unit price cannot be negative"
        )
    validate_tax_rate(item.tax_rate)


class TaxCalculator:
    """
    Pure tax and totals calculator.

    Contract:
        Never rounds per line.  All results are Decimal.
    """

    @traced_engine("tax", "1.0", fingerprint_fields=("currency",))
    def calculate_totals(
        self,
        *,
        line_items: Sequence[LineItem],
        currency: str,
    ) -> InvoiceTotals:
        """
        Compute subtotal, tax and grand total for an invoice.

        Raises:
            InvalidTaxRateError: a line's rate is outside [0, 100].
            InvalidAmountError: a negative quantity or unit price.
            InvalidCurrencyError: unknown currency code.
        """
        code = CurrencyRegistry.validate(currency)
        raw_subtotal = Decimal("0")
        raw_tax = Decimal("0")
        for index, item in enumerate(line_items):
            _validate_line(index, item)
            raw_subtotal += item.net_amount
            raw_tax += item.tax_amount

        subtotal = quantize_amount(raw_subtotal, code)
        tax_amount = quantize_amount(raw_tax, code)
        return InvoiceTotals(
            currency=code,
            subtotal=subtotal,
            tax_amount=tax_amount,
            grand_total=subtotal + tax_amount,
            line_count=len(line_items),
        )

    def calculate(
        self,
        amount: Decimal,
        rate: Decimal,
        currency: str,
        *,
        inclusive: bool = False,
    ) -> TaxComputation:
        """
        Tax a single amount.

        With ``inclusive=True`` the amount is gross and the net is
        back-calculated as ``gross * 100 / (100 + rate)``; the tax is the
        rounded difference so net + tax == gross.
        """
        value = to_decimal(amount)
        pct = validate_tax_rate(rate)
        if inclusive:
            gross = quantize_amount(value, currency)
            net = quantize_amount(value * _HUNDRED / (_HUNDRED + pct), currency)
            tax = gross - net
        else:
            net = quantize_amount(value, currency)
            tax = quantize_amount(value * pct / _HUNDRED, currency)
            gross = net + tax
        return TaxComputation(
            net_amount=net,
            tax_amount=tax,
            gross_amount=gross,
            rate=pct,
            inclusive=inclusive,
        )

    def breakdown(
        self,
        line_items: Sequence[LineItem],
        currency: str,
    ) -> tuple[TaxBreakdownLine, ...]:
        """Per-rate taxable base and tax, ordered by rate."""
        code = CurrencyRegistry.validate(currency)
        groups: dict[Decimal, list[LineItem]] = {}
        for index, item in enumerate(line_items):
            _validate_line(index, item)
            groups.setdefault(to_decimal(item.tax_rate), []).append(item)

        lines = []
        for rate in sorted(groups):
            items = groups[rate]
            lines.append(TaxBreakdownLine(
                rate=rate,
                taxable_amount=quantize_amount(sum((i.net_amount for i in items), Decimal("0")), code),
                tax_amount=quantize_amount(sum((i.tax_amount for i in items), Decimal("0")), code),
                line_count=len(items),
            ))
        return tuple(lines)


_TAX_ID_SEPARATORS = re.compile(r"[\s-]")


def normalize_tax_id(value: str) -> str:
    return _TAX_ID_SEPARATORS.sub("", value or "")


def validate_tax_id(value: str) -> str:
    """
    Validate a tax registration number (15 digits; spaces and dashes ignored).

    Returns the normalized digits.
    """
    digits = normalize_tax_id(value)
    if len(digits) != TAX_ID_LENGTH or not digits.isdigit():
        raise ValidationError("tax_id", f"Tax registration number must be {TAX_ID_LENGTH} digits")
    return digits


def format_tax_id(value: str) -> str:
    """Display a tax registration number in groups of three: ``100-123-456-789-012``."""
    digits = validate_tax_id(value)
    return "-".join(digits[i:i + 3] for i in range(0, TAX_ID_LENGTH, 3))


_default_calculator = TaxCalculator()


def calculate_totals(line_items: Sequence[LineItem], currency: str) -> InvoiceTotals:
    """Module-level convenience for ``TaxCalculator().calculate_totals``."""
    return _default_calculator.calculate_totals(line_items=line_items, currency=currency)


def calculate_tax(
    amount: Decimal,
    rate: Decimal,
    currency: str,
    *,
    inclusive: bool = False,
) -> TaxComputation:
    return _default_calculator.calculate(amount, rate, currency, inclusive=inclusive)


def tax_breakdown(line_items: Sequence[LineItem], currency: str) -> tuple[TaxBreakdownLine, ...]:
    return _default_calculator.breakdown(line_items, currency)
