"""
Money Module

Single-currency monetary amounts with exact minor-unit precision.
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Union

from .exceptions import InvalidRequest

# Set global decimal context for financial precision
getcontext().prec = 28

MINOR_UNIT_PLACES = 2
MINOR_UNIT = Decimal('0.1') ** MINOR_UNIT_PLACES


def quantize(value: Decimal) -> Decimal:
    """Round a Decimal half-up to the minor unit"""
    return value.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    """
    Immutable money amount, always rounded to the minor unit.
    All balances, amounts and fees MUST use this class.
    """
    amount: Decimal

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', to_decimal(self.amount))
        object.__setattr__(self, 'amount', quantize(self.amount))

    @classmethod
    def zero(cls) -> 'Money':
        return cls(Decimal('0'))

    def __add__(self, other: 'Money') -> 'Money':
        return Money(self.amount + other.amount)

    def __sub__(self, other: 'Money') -> 'Money':
        return Money(self.amount - other.amount)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier)

    def __neg__(self) -> 'Money':
        return Money(-self.amount)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount

    def __hash__(self) -> int:
        return hash(self.amount)

    def __lt__(self, other: 'Money') -> bool:
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display"""
        return f"{self.amount:,.{MINOR_UNIT_PLACES}f}"

    def __str__(self) -> str:
        return str(self.amount)


def to_decimal(value: Union[str, int, Decimal]) -> Decimal:
    """
    Convert a wire value to Decimal without passing through binary floats

    Args:
        value: String, int, float or Decimal representation of an amount

    Returns:
        Decimal value

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() of a float gives its shortest repr, so 0.1 stays 0.1
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Cannot convert '{value}' to Decimal")
    if not result.is_finite():
        raise ValueError(f"Amount must be a finite number, got '{value}'")
    return result


def parse_amount(value: Union['Money', str, int, Decimal]) -> Money:
    """
    Validate a requested amount and convert it to Money without rounding

    Raises:
        InvalidRequest: If the value is not a finite number, is finer than the
            minor unit, or is too large to represent
    """
    try:
        amount = to_decimal(value.amount if isinstance(value, Money) else value)
    except ValueError as e:
        raise InvalidRequest(str(e))

    try:
        exact = quantize(amount)
    except InvalidOperation:
        raise InvalidRequest(f"Amount {value} is out of range")

    if exact != amount:
        raise InvalidRequest(
            f"Amount {value} has more than {MINOR_UNIT_PLACES} decimal places", amount=amount
        )
    return Money(exact)
