"""Common utilities and errors for the cyclepat pattern system."""

from __future__ import annotations

from fractions import Fraction
from typing import Any


class PartialMatchException(Exception):
    def __init__(self, val: Any):
        super().__init__(f"Unmatched type: {type(val)}")


class PatternError(Exception):
    """Base class for errors raised while building or querying patterns."""

    pass


class InvalidTimeError(PatternError, ValueError):
    """A time value cannot be represented exactly as a rational."""

    def __init__(self, val: Any):
        super().__init__(f"{val!r} cannot be converted into a rational time value")
        self.val = val


class TypeMismatchError(PatternError, TypeError):
    """A value fails the predicate of a typed pattern."""

    def __init__(self, kind_name: str, val: Any):
        super().__init__(
            f"Expected a {kind_name} value but got {val!r} ({type(val).__name__})"
        )
        self.kind_name = kind_name
        self.val = val


class ZeroFactorError(PatternError, ZeroDivisionError):
    """A speed factor of zero was given to fast/slow."""

    def __init__(self, op: str):
        super().__init__(f"Cannot {op} a pattern by a factor of zero")
        self.op = op


def identity[A](val: A) -> A:
    return val


def format_fraction(frac: Fraction) -> str:
    """Format a fraction for display.

    Whole numbers print without a denominator, everything else as n/d.

    Args:
        frac: The fraction to format

    Returns:
        String representation of the fraction
    """
    if frac.denominator == 1:
        return str(frac.numerator)
    else:
        return f"{frac.numerator}/{frac.denominator}"
