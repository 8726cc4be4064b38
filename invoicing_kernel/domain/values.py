"""
Amount coercion and the Money value object.

Every amount that enters the domain (line item quantities and prices, tax
rates, payment amounts, configuration thresholds) passes through
``to_decimal``.  Binary floating point never becomes an amount.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from invoicing_kernel.domain.currency import CurrencyRegistry, format_amount, quantize_amount
from invoicing_kernel.exceptions import CurrencyMismatchError, InvalidAmountError


def to_decimal(value: Decimal | str | int, field: str = "amount") -> Decimal:
    """Coerce ``value`` to a finite Decimal; floats and bools raise InvalidAmountError."""
    if isinstance(value, (bool, float)):
        raise InvalidAmountError(
            field, value, f"{field} must be a decimal string or Decimal, not {type(value).__name__}"
        )
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise InvalidAmountError(field, value) from e
    if not result.is_finite():
        raise InvalidAmountError(field, value)
    return result


@functools.total_ordering
@dataclass(frozen=True, slots=True)
class Money:
    """
    An amount in one currency.

    Arithmetic and comparison across currencies raise CurrencyMismatchError.
    Results are not rounded; call ``round()`` at aggregation boundaries.
    """

    amount: Decimal
    currency: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "currency", CurrencyRegistry.validate(self.currency))

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str) -> Money:
        return cls(to_decimal(amount), currency)

    @classmethod
    def zero(cls, currency: str) -> Money:
        return cls(Decimal("0"), currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def round(self) -> Money:
        return Money(quantize_amount(self.amount, self.currency), self.currency)

    def format(self) -> str:
        return format_amount(self.amount, self.currency)

    def _same_currency(self, other: Money) -> Money:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)
        return other

    def __add__(self, other: object) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount + self._same_currency(other).amount, self.currency)

    def __sub__(self, other: object) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount - self._same_currency(other).amount, self.currency)

    def __neg__(self) -> Money:
        return Money(-self.amount, self.currency)

    def __mul__(self, factor: object) -> Money:
        if isinstance(factor, bool) or not isinstance(factor, (Decimal, int)):
            return NotImplemented
        return Money(self.amount * factor, self.currency)

    __rmul__ = __mul__

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount < self._same_currency(other).amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"
