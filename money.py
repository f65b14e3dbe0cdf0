from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from fractions import Fraction
from typing import Iterable, Union

from errors import ComputationError, ValidationError

_CENT = Decimal("0.01")
# Fits a 64-bit integer column with room for sums.
MAX_CENTS = 10**15


def _round_half_up(value: Fraction) -> int:
    """Round an exact rational number of cents to an integer, halves away from zero."""
    quotient, remainder = divmod(abs(value.numerator), value.denominator)
    if remainder * 2 >= value.denominator:
        quotient += 1
    return -quotient if value < 0 else quotient


@dataclass(frozen=True, order=True)
class Money:
    """A fixed-point amount stored as integer cents; only ``divide`` rounds."""

    cents: int

    def __post_init__(self) -> None:
        if isinstance(self.cents, bool) or not isinstance(self.cents, int):
            raise TypeError("Money must be built from integer cents")

    @classmethod
    def zero(cls) -> Money:
        return cls(0)

    @classmethod
    def from_cents(cls, cents: int) -> Money:
        return cls(int(cents))

    @classmethod
    def parse(cls, value: Union[str, Decimal, Money]) -> Money:
        if isinstance(value, Money):
            return value
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, str):
            clean = value.strip().replace(" ", "")
            if not clean:
                raise ValidationError("Amount is required")
            if "," in clean and "." not in clean:
                clean = clean.replace(",", ".")
            try:
                amount = Decimal(clean)
            except InvalidOperation as exc:
                raise ValidationError(f"Invalid amount: {value!r}") from exc
        else:
            raise ValidationError("Amounts must be given as decimal strings")
        if not amount.is_finite():
            raise ValidationError(f"Invalid amount: {value!r}")
        if amount and amount.adjusted() > 15:
            raise ValidationError(f"Amount out of range: {value!r}")
        try:
            cents = (amount / _CENT).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        except InvalidOperation as exc:
            raise ValidationError(f"Invalid amount: {value!r}") from exc
        if abs(cents) > MAX_CENTS:
            raise ValidationError(f"Amount out of range: {value!r}")
        return cls(int(cents))

    @classmethod
    def total(cls, values: Iterable[Money]) -> Money:
        return cls(sum((v.cents for v in values), 0))

    def divide(self, divisor: int) -> Money:
        if divisor == 0:
            raise ComputationError("Division of an amount by zero")
        return Money(_round_half_up(Fraction(self.cents, divisor)))

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents + other.cents)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents - other.cents)

    def __neg__(self) -> Money:
        return Money(-self.cents)

    def __abs__(self) -> Money:
        return Money(abs(self.cents))

    def __bool__(self) -> bool:
        return self.cents != 0

    def is_negative(self) -> bool:
        return self.cents < 0

    def is_positive(self) -> bool:
        return self.cents > 0

    def to_decimal(self) -> Decimal:
        return (Decimal(self.cents) * _CENT).quantize(_CENT)

    def __str__(self) -> str:
        sign = "-" if self.cents < 0 else ""
        whole, frac = divmod(abs(self.cents), 100)
        return f"{sign}{whole}.{frac:02d}"

    def __repr__(self) -> str:
        return f"Money('{self}')"
