"""Time types and exact numeric conversion for cyclepat patterns.

All pattern time is rational. Floats only appear at the edges, when cycle
time is converted to wall-clock time for a transport.
"""

from __future__ import annotations

import math
import time
from decimal import Decimal
from fractions import Fraction
from typing import Any, NewType, Union

from cyclepat.common import InvalidTimeError

# =============================================================================
# Core Numeric Types and Utilities
# =============================================================================

Numeric = Union[int, float, Fraction]
"""Type alias for numeric values that can be converted to Fraction."""


def is_numeric(value: Any) -> bool:
    """Check if a value is a numeric type.

    Args:
        value: The value to check

    Returns:
        True if the value is int, float, or Fraction (bool excluded)
    """
    return isinstance(value, (int, float, Fraction)) and not isinstance(value, bool)


def numeric_frac(value: Any) -> Fraction:
    """Convert a value to an exact Fraction.

    Finite floats convert to their exact binary value, so 0.1 is not 1/10;
    pass "0.1" or Fraction(1, 10) for decimal values. Strings are parsed by
    Fraction, so "3/4" and "0.75" both work.

    Args:
        value: The value to convert

    Returns:
        The value as a Fraction

    Raises:
        InvalidTimeError: If the value cannot be converted exactly
    """
    if isinstance(value, bool):
        raise InvalidTimeError(value)
    elif isinstance(value, Fraction):
        return value
    elif isinstance(value, int):
        return Fraction(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidTimeError(value)
        return Fraction(value)
    elif isinstance(value, Decimal):
        if not value.is_finite():
            raise InvalidTimeError(value)
        return Fraction(value)
    elif isinstance(value, str):
        try:
            return Fraction(value.strip())
        except (ValueError, ZeroDivisionError) as e:
            raise InvalidTimeError(value) from e
    else:
        raise InvalidTimeError(value)


# =============================================================================
# Core Time Types
# =============================================================================

CycleTime = NewType("CycleTime", Fraction)
"""Time in cycles."""

CycleDelta = NewType("CycleDelta", Fraction)
"""Duration in cycles."""

PosixTime = NewType("PosixTime", float)
"""Wall clock time (seconds since epoch)."""

PosixDelta = NewType("PosixDelta", float)
"""Wall clock duration in seconds."""

Cps = NewType("Cps", Fraction)
"""Cycles per second."""

Bpc = NewType("Bpc", int)
"""Beats per cycle."""

type TimeLike = Union[CycleTime, Numeric, Decimal, str]
"""Values accepted wherever a cycle time is expected."""


def mk_cycle_time(value: TimeLike) -> CycleTime:
    """Create a CycleTime from any exactly-convertible value.

    Raises:
        InvalidTimeError: If the value cannot be converted
    """
    return CycleTime(numeric_frac(value))


def mk_cycle_delta(value: TimeLike) -> CycleDelta:
    """Create a CycleDelta from any exactly-convertible value.

    Raises:
        InvalidTimeError: If the value cannot be converted
    """
    return CycleDelta(numeric_frac(value))


def mk_cps(value: Numeric) -> Cps:
    """Create a Cps from a positive numeric value.

    Raises:
        ValueError: If the value is not numeric or not positive
    """
    if not is_numeric(value):
        raise ValueError(f"Cannot create Cps from {type(value)}")
    cps = numeric_frac(value)
    if cps <= 0:
        raise ValueError(f"Cps must be positive, got {value}")
    return Cps(cps)


def bpm_to_cps(bpm: Numeric, beats_per_cycle: int) -> Cps:
    """Convert beats per minute to cycles per second."""
    return mk_cps(numeric_frac(bpm) / 60 / beats_per_cycle)


# =============================================================================
# Utility Functions for Time Fractions
# =============================================================================


def frac_floor(frac: Fraction) -> int:
    """Exact floor of a fraction."""
    return math.floor(frac)


def frac_ceil(frac: Fraction) -> int:
    """Exact ceiling of a fraction."""
    return math.ceil(frac)


def sam(t: Fraction) -> CycleTime:
    """The start of the cycle containing t."""
    return CycleTime(Fraction(frac_floor(t)))


def next_sam(t: Fraction) -> CycleTime:
    """The start of the cycle after the one containing t."""
    return CycleTime(sam(t) + 1)


def now() -> PosixTime:
    """Get the current POSIX time."""
    return PosixTime(time.time())
