from decimal import Decimal
from fractions import Fraction

import pytest

from cyclepat.arc import TimeSpan
from cyclepat.common import InvalidTimeError
from cyclepat.pat import Pattern
from cyclepat.time import (
    bpm_to_cps,
    frac_ceil,
    frac_floor,
    is_numeric,
    mk_cps,
    next_sam,
    numeric_frac,
    sam,
)


def test_numeric_frac_exact() -> None:
    """Test conversion of the accepted numeric inputs."""
    assert numeric_frac(3) == Fraction(3)
    assert numeric_frac(Fraction(1, 3)) == Fraction(1, 3)
    assert numeric_frac(0.1) == Fraction(0.1)
    assert numeric_frac(0.1) != Fraction(1, 10)
    assert numeric_frac(1.5) == Fraction(3, 2)
    assert numeric_frac(Decimal("0.125")) == Fraction(1, 8)
    assert numeric_frac(" 2/3 ") == Fraction(2, 3)
    assert numeric_frac("0.75") == Fraction(3, 4)


@pytest.mark.parametrize(
    "value", [True, None, float("nan"), float("-inf"), Decimal("NaN"), "x", "1/0", [1]]
)
def test_numeric_frac_rejects(value: object) -> None:
    with pytest.raises(InvalidTimeError):
        numeric_frac(value)


def test_is_numeric() -> None:
    assert is_numeric(1)
    assert is_numeric(1.5)
    assert is_numeric(Fraction(1, 2))
    assert not is_numeric(True)
    assert not is_numeric("1")


def test_floor_ceil_sam() -> None:
    assert frac_floor(Fraction(-1, 2)) == -1
    assert frac_ceil(Fraction(1, 2)) == 1
    assert sam(Fraction(7, 3)) == Fraction(2)
    assert next_sam(Fraction(7, 3)) == Fraction(3)
    assert next_sam(Fraction(2)) == Fraction(3)


def test_cps() -> None:
    assert mk_cps(Fraction(1, 2)) == Fraction(1, 2)
    assert bpm_to_cps(120, 4) == Fraction(1, 2)
    with pytest.raises(ValueError):
        mk_cps(0)
    with pytest.raises(ValueError):
        mk_cps(-1)


def test_float_bounds_are_exact() -> None:
    """Test float span bounds are never rounded away."""
    assert TimeSpan(1e-7, 1).start == Fraction(1e-7)
    assert TimeSpan(1e-7, 1).start > 0
    events = Pattern.pure("x").query(TimeSpan(0.9999999, 2))
    assert [ev.part for ev in events] == [
        TimeSpan(Fraction(0.9999999), 1),
        TimeSpan(1, 2),
    ]
