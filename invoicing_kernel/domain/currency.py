"""
ISO 4217 currencies accepted on invoices.

The minor-unit precision of a currency drives everything amount-related:
half-up rounding of totals, the tolerance used when deciding whether an
invoice is fully paid, and display formatting.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import ClassVar, NamedTuple

from invoicing_kernel.exceptions import InvalidAmountError, InvalidCurrencyError


class CurrencyInfo(NamedTuple):
    code: str
    decimal_places: int
    name: str

    @property
    def minor_unit(self) -> Decimal:
        """``Decimal("0.01")`` for two places, ``Decimal("1")`` for none."""
        return Decimal(1).scaleb(-self.decimal_places)


def _table(*rows: tuple[str, int, str]) -> dict[str, CurrencyInfo]:
    return {code: CurrencyInfo(code, places, name) for code, places, name in rows}


class CurrencyRegistry:
    """Lookup of supported currencies by upper-case code."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = _table(
        ("AED", 2, "UAE Dirham"),
        ("SAR", 2, "Saudi Riyal"),
        ("QAR", 2, "Qatari Riyal"),
        ("EGP", 2, "Egyptian Pound"),
        ("BHD", 3, "Bahraini Dinar"),
        ("KWD", 3, "Kuwaiti Dinar"),
        ("OMR", 3, "Omani Rial"),
        ("JOD", 3, "Jordanian Dinar"),
        ("USD", 2, "US Dollar"),
        ("EUR", 2, "Euro"),
        ("GBP", 2, "Pound Sterling"),
        ("CHF", 2, "Swiss Franc"),
        ("CAD", 2, "Canadian Dollar"),
        ("AUD", 2, "Australian Dollar"),
        ("INR", 2, "Indian Rupee"),
        ("PKR", 2, "Pakistani Rupee"),
        ("CNY", 2, "Yuan Renminbi"),
        ("SGD", 2, "Singapore Dollar"),
        ("JPY", 0, "Japanese Yen"),
        ("KRW", 0, "South Korean Won"),
    )

    @classmethod
    def _lookup(cls, code: object) -> CurrencyInfo | None:
        if not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.strip().upper())

    @classmethod
    def is_valid(cls, code: object) -> bool:
        return cls._lookup(code) is not None

    @classmethod
    def validate(cls, code: object) -> str:
        """Normalized code, or InvalidCurrencyError."""
        info = cls._lookup(code)
        if info is None:
            raise InvalidCurrencyError(code if isinstance(code, str) and code else repr(code))
        return info.code

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        return cls._info(code).decimal_places

    @classmethod
    def get_rounding_tolerance(cls, code: str) -> Decimal:
        """One minor unit; two amounts closer than this are treated as equal."""
        return cls._info(code).minor_unit

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES)

    @classmethod
    def _info(cls, code: str) -> CurrencyInfo:
        return cls._CURRENCIES[cls.validate(code)]


def quantize_amount(amount: Decimal, currency_code: str) -> Decimal:
    """Round half-up to the currency's minor unit."""
    places = CurrencyRegistry.get_decimal_places(currency_code)
    return amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal | str | int, currency_code: str) -> str:
    """Display form such as ``AED 1,000.00`` or ``AED -12.50``."""
    code = CurrencyRegistry.validate(currency_code)
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError("amount", amount) from e
    places = CurrencyRegistry.get_decimal_places(code)
    return f"{code} {quantize_amount(value, code):,.{places}f}"
