"""
Money Module

Typed monetary values for the cooperative. Amounts are carried as Decimal
(convertible to integer minor units) through the whole pipeline and are
only formatted with a currency symbol at display time. NEVER uses float.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Union
from enum import Enum
import re

getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 currencies used by member cooperatives"""
    NGN = ("NGN", 2, "₦")   # Nigerian Naira
    GHS = ("GHS", 2, "GH₵")  # Ghanaian Cedi
    KES = ("KES", 2, "KSh")  # Kenyan Shilling
    USD = ("USD", 2, "$")    # US Dollar

    def __init__(self, code: str, precision: int, symbol: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol

    @property
    def minor_factor(self) -> Decimal:
        return Decimal(10) ** self.precision


AmountLike = Union[Decimal, int, str]


@dataclass(frozen=True)
class Money:
    """
    Immutable money value with currency.
    Rounded half-up to the currency precision on construction.
    """
    amount: Decimal
    currency: Currency = Currency.NGN

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            if isinstance(self.amount, float):
                raise TypeError("Money amounts must not be float")
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        rounded = self.amount.quantize(
            Decimal('0.1') ** self.currency.precision,
            rounding=ROUND_HALF_UP
        )
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls, currency: Currency = Currency.NGN) -> 'Money':
        return cls(Decimal('0'), currency)

    @classmethod
    def from_minor(cls, minor_units: int, currency: Currency = Currency.NGN) -> 'Money':
        """Build from integer minor units (kobo for NGN)"""
        return cls(Decimal(minor_units) / currency.minor_factor, currency)

    @property
    def minor_units(self) -> int:
        """Integer minor units, e.g. 5000000 for ₦50,000.00"""
        return int(self.amount * self.currency.minor_factor)

    def _check_currency(self, other: 'Money', verb: str) -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Cannot {verb} Money and {type(other).__name__}")
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: AmountLike) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier, self.currency)

    def __truediv__(self, divisor: AmountLike) -> 'Money':
        if not isinstance(divisor, Decimal):
            divisor = Decimal(str(divisor))
        return Money(self.amount / divisor, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency.code))

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        return self.amount < Decimal('0')

    def round_whole(self) -> 'Money':
        """Round half-up to whole currency units"""
        return Money(self.amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP), self.currency)

    def clamp_zero(self) -> 'Money':
        """Floor at zero"""
        return self if not self.is_negative() else Money.zero(self.currency)

    def to_string(self) -> str:
        """Format for display, e.g. ₦50,000.00"""
        sign = "-" if self.is_negative() else ""
        return f"{sign}{self.currency.symbol}{abs(self.amount):,.{self.currency.precision}f}"

    def __str__(self) -> str:
        return self.to_string()


def parse_amount(value: Union[str, int, Decimal]) -> Decimal:
    """
    Convert user supplied amounts such as "₦50,000" or "50000.50" to Decimal.

    Raises:
        ValueError: If the value is empty or not numeric
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Amount must be numeric")
    if isinstance(value, int):
        return Decimal(value)
    if not value or not isinstance(value, str):
        raise ValueError("Amount must be a non-empty string")

    # Currency symbols, letters, whitespace and thousands separators
    clean_value = re.sub(r'[^\d.\-+]', '', value.strip())
    if not clean_value:
        raise ValueError(f"Cannot convert '{value}' to an amount")

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to an amount")


def to_money(value: Union[Money, str, int, Decimal], currency: Currency = Currency.NGN) -> Money:
    """Coerce an amount into Money in the given currency"""
    if isinstance(value, Money):
        if value.currency != currency:
            raise ValueError(f"Expected {currency.code}, got {value.currency.code}")
        return value
    return Money(parse_amount(value), currency)
