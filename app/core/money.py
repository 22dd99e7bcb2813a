"""
Money value type: integer minor units plus an ISO 4217 currency code.

Every amount inside the core is an integer count of minor units (cents,
centésimos). Conversion to major units happens only at the presentation
boundary through to_major()/from_major().

Usage:
    from core.money import Money

    total = Money(10000, "UYU")          # 100.00 UYU
    fee = total.percentage("10")         # Money(1000, "UYU")
    net = total - fee                    # Money(9000, "UYU")

    Money.from_major("12.345", "USD")    # Money(1235, "USD"), half-up
    Money(1235, "USD").to_major()        # Decimal("12.35")

Rules:
    - Amounts must be int (bool and float are rejected)
    - Arithmetic between different currencies raises CurrencyMismatchError
    - Rounding is always ROUND_HALF_UP on the minor unit
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING

from core.exceptions import ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable


# Currencies whose minor unit is not 1/100 of the major unit
CURRENCY_EXPONENTS: dict[str, int] = {
    "CLP": 0,
    "JPY": 0,
    "KRW": 0,
    "PYG": 0,
    "BHD": 3,
    "KWD": 3,
}
DEFAULT_EXPONENT = 2


class InvalidAmountError(ValidationError):
    """Raised when an amount is not an integer count of minor units."""

    default_error_code: str = "INVALID_AMOUNT"


class CurrencyMismatchError(ValidationError):
    """Raised when combining amounts in different currencies."""

    default_error_code: str = "CURRENCY_MISMATCH"


def currency_exponent(currency: str) -> int:
    """Number of decimal places between the major and minor unit."""
    return CURRENCY_EXPONENTS.get(currency.upper(), DEFAULT_EXPONENT)


def _to_decimal(value) -> Decimal:
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(
            f"Refusing to convert {type(value).__name__} to a money amount",
            details={"value": repr(value)},
        )
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmountError(
            f"Not a numeric amount: {value!r}",
            details={"value": repr(value)},
        ) from exc


@dataclass(frozen=True, slots=True)
class Money:
    """
    Immutable money amount in minor units.

    Attributes:
        amount: Integer count of minor units (may be negative for deltas)
        currency: Upper-case ISO 4217 code
    """

    amount: int
    currency: str

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise InvalidAmountError(
                "Money amount must be an integer count of minor units",
                details={"amount": repr(self.amount)},
            )
        if not isinstance(self.currency, str) or len(self.currency) != 3:
            raise InvalidAmountError(
                "Currency must be a 3-letter ISO 4217 code",
                details={"currency": repr(self.currency)},
            )
        if self.currency != self.currency.upper():
            object.__setattr__(self, "currency", self.currency.upper())

    # =========================================================================
    # Construction & conversion
    # =========================================================================

    @classmethod
    def zero(cls, currency: str) -> Money:
        return cls(0, currency)

    @classmethod
    def from_major(cls, value, currency: str) -> Money:
        """
        Build from a major-unit value ("100.00", Decimal, int).

        Floats are rejected; pass a string or Decimal instead.
        """
        quantum = Decimal(1).scaleb(-currency_exponent(currency))
        major = _to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)
        return cls(int(major.scaleb(currency_exponent(currency))), currency)

    def to_major(self) -> Decimal:
        """Major-unit Decimal for display, e.g. Money(10000, "UYU") -> 100.00."""
        exponent = currency_exponent(self.currency)
        return Decimal(self.amount).scaleb(-exponent).quantize(
            Decimal(1).scaleb(-exponent)
        )

    # =========================================================================
    # Arithmetic
    # =========================================================================

    def _check_currency(self, other: Money) -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Cannot combine Money with {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatchError(
                f"Cannot combine {self.currency} with {other.currency}",
                details={"left": self.currency, "right": other.currency},
            )

    def __add__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> Money:
        return Money(-self.amount, self.currency)

    def __lt__(self, other: Money) -> bool:
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        self._check_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        self._check_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        self._check_currency(other)
        return self.amount >= other.amount

    def multiply(self, factor) -> Money:
        """Multiply by an int/Decimal/str factor, rounding half-up to a minor unit."""
        product = Decimal(self.amount) * _to_decimal(factor)
        return Money(int(product.quantize(Decimal(1), rounding=ROUND_HALF_UP)), self.currency)

    def percentage(self, percent) -> Money:
        """
        Percentage of this amount, rounded half-up.

        Args:
            percent: Percentage as int/Decimal/str, e.g. "10" or "12.5"
        """
        return self.multiply(_to_decimal(percent) / Decimal(100))

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    def __str__(self) -> str:
        return f"{self.to_major()} {self.currency}"


def sum_money(amounts: Iterable[Money], currency: str) -> Money:
    """Sum amounts that must all share `currency`; empty input gives zero."""
    total = Money.zero(currency)
    for amount in amounts:
        total = total + amount
    return total
