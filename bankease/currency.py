"""
Money

Currencies with their minor-unit precision and an immutable Decimal-backed
Money value. Floats never reach a balance: every amount is parsed from its
string form and rounded to the currency's minor unit.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering
from typing import Any, Optional

from .errors import InvalidAmountError

getcontext().prec = 28


class Currency(Enum):
    """Supported ledger currencies as (ISO 4217 code, minor-unit digits)"""
    USD = ("USD", 2)
    EUR = ("EUR", 2)
    GBP = ("GBP", 2)
    INR = ("INR", 2)
    JPY = ("JPY", 0)

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision

    @property
    def quantum(self) -> Decimal:
        """Smallest representable amount, e.g. Decimal('0.01')"""
        return Decimal(1).scaleb(-self.precision)


@total_ordering
@dataclass(frozen=True)
class Money:
    """
    An amount in one currency, always held at the currency's precision.

    Arithmetic and ordering are only defined between equal currencies;
    mixing currencies raises ValueError.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        value = self.amount if isinstance(self.amount, Decimal) else Decimal(str(self.amount))
        object.__setattr__(
            self, 'amount', value.quantize(self.currency.quantum, rounding=ROUND_HALF_UP)
        )

    @classmethod
    def zero(cls, currency: Currency) -> 'Money':
        return cls(Decimal(0), currency)

    def _same_currency(self, other: 'Money') -> Decimal:
        if self.currency != other.currency:
            raise ValueError(
                f"Currency mismatch: {self.currency.code} vs {other.currency.code}"
            )
        return other.amount

    def __add__(self, other: 'Money') -> 'Money':
        return Money(self.amount + self._same_currency(other), self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        return Money(self.amount - self._same_currency(other), self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __lt__(self, other: 'Money') -> bool:
        return self.amount < self._same_currency(other)

    def is_zero(self) -> bool:
        return not self.amount

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def to_decimal_string(self) -> str:
        """Plain decimal string with exactly the currency precision, e.g. '750.00'"""
        return f"{self.amount:.{self.currency.precision}f}"

    def to_string(self) -> str:
        """Display form with code and thousands separators, e.g. 'USD 1,500.00'"""
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"


def parse_amount(
    value: Any,
    currency: Currency,
    minimum: Optional[Decimal] = None,
    maximum: Optional[Decimal] = None
) -> Money:
    """
    Parse a caller-supplied amount into Money.

    Accepts strings, ints, floats and Decimals. The amount must be finite,
    positive, carry no more decimal places than the currency allows, and lie
    within [minimum, maximum] when those bounds are given.

    Raises:
        InvalidAmountError: On any violation
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmountError()

    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError()

    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError()

    if amount.normalize().as_tuple().exponent < -currency.precision:
        raise InvalidAmountError(
            f"Amount cannot have more than {currency.precision} decimal places"
        )

    if minimum is not None and amount < minimum:
        raise InvalidAmountError(
            f"Minimum amount is {Money(minimum, currency).to_string()}"
        )

    if maximum is not None and amount > maximum:
        raise InvalidAmountError(
            f"Maximum amount is {Money(maximum, currency).to_string()}"
        )

    return Money(amount, currency)
