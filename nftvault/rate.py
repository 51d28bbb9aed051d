"""
Fixed-point ratio used for interest rates, fees and multipliers.

A Rate is a numerator/denominator pair applied with floor division, so the
result of calculate() never rounds up. Rates are validated when settings
are set, never when they are used.
"""

from dataclasses import dataclass
from fractions import Fraction

from .errors import InvalidRateError


@dataclass(frozen=True)
class Rate:
    """
    Represents a non-negative ratio numerator / denominator.

    Rates may exceed 1 in general; uses that need a fraction (fees, APR,
    insurance penalty) require is_below_one().
    """
    numerator: int
    denominator: int

    def is_valid(self) -> bool:
        """A rate is valid when its denominator is positive and numerator non-negative."""
        return self.denominator > 0 and self.numerator >= 0

    def is_below_one(self) -> bool:
        return self.numerator <= self.denominator

    def is_above_one(self) -> bool:
        return self.numerator >= self.denominator

    def calculate(self, base: int) -> int:
        """
        Applies the rate to an integer amount.

        Args:
            base: Amount to scale

        Returns:
            floor(base * numerator / denominator)
        """
        return base * self.numerator // self.denominator

    def validate(self, below_one: bool = True, name: str = "rate") -> "Rate":
        """
        Checks the rate and returns it unchanged.

        Args:
            below_one: Whether the rate must not exceed 1.0
            name: Field name used in the error message

        Returns:
            The rate itself, for chaining

        Raises:
            InvalidRateError: If the rate is malformed or above one when it must not be
        """
        if not isinstance(self.numerator, int) or not isinstance(self.denominator, int):
            raise InvalidRateError(f"{name} must use integer terms, got {self!r}")
        if not self.is_valid():
            raise InvalidRateError(f"{name} is not a valid rate: {self.numerator}/{self.denominator}")
        if below_one and not self.is_below_one():
            raise InvalidRateError(f"{name} must not exceed 1.0: {self.numerator}/{self.denominator}")
        return self

    def as_fraction(self) -> Fraction:
        return Fraction(self.numerator, self.denominator)

    def __str__(self):
        return f"{self.numerator}/{self.denominator}"

    @classmethod
    def parse(cls, value) -> "Rate":
        """
        Builds a Rate from configuration data.

        Accepts an existing Rate, a (numerator, denominator) pair, a mapping
        with "numerator"/"denominator" keys, or a "num/den" string.

        Raises:
            InvalidRateError: If the value cannot be read as a rate
        """
        if isinstance(value, Rate):
            return value
        if isinstance(value, dict):
            try:
                return cls(int(value["numerator"]), int(value["denominator"]))
            except KeyError as exc:
                raise InvalidRateError(f"Rate mapping is missing {exc.args[0]!r}") from exc
        if isinstance(value, str):
            parts = value.split("/")
            if len(parts) != 2:
                raise InvalidRateError(f"Rate string must look like 'num/den', got {value!r}")
            try:
                return cls(int(parts[0].strip()), int(parts[1].strip()))
            except ValueError as exc:
                raise InvalidRateError(f"Rate string has non-integer terms: {value!r}") from exc
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return cls(int(value[0]), int(value[1]))
        raise InvalidRateError(f"Cannot read a rate from {value!r}")
