"""Typed pattern variants.

Values inside a pattern are opaque to the core algebra. The functions here
validate raw values at the API boundary and lift them into patterns whose
values are guaranteed to be of one kind.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum, auto
from fractions import Fraction
from typing import Any, Callable

from cyclepat.common import PartialMatchException, TypeMismatchError
from cyclepat.pat import Pattern

__all__ = [
    "C",
    "F",
    "I",
    "R",
    "S",
    "ValueKind",
    "control_pattern",
    "float_pattern",
    "integer_pattern",
    "kind_of",
    "rational_pattern",
    "string_pattern",
    "typed_sequence",
]


class ValueKind(Enum):
    """The kinds of value a typed pattern may hold."""

    String = auto()
    Integer = auto()
    Float = auto()
    Rational = auto()
    Control = auto()
    Function = auto()
    Any = auto()

    def check(self, value: Any) -> bool:
        """Test whether a value belongs to this kind.

        Args:
            value: The value to test

        Returns:
            True if the value is acceptable for patterns of this kind
        """
        match self:
            case ValueKind.String:
                return isinstance(value, str)
            case ValueKind.Integer:
                return isinstance(value, int) and not isinstance(value, bool)
            case ValueKind.Float:
                return isinstance(value, (int, float)) and not isinstance(value, bool)
            case ValueKind.Rational:
                return isinstance(value, Fraction)
            case ValueKind.Control:
                return isinstance(value, Mapping) and all(
                    isinstance(k, str) for k in value
                )
            case ValueKind.Function:
                return callable(value)
            case ValueKind.Any:
                return True
            case _:
                raise PartialMatchException(self)

    def describe(self) -> str:
        return self.name.lower()


def kind_of(value: Any) -> ValueKind:
    """The most specific kind of a raw value."""
    for kind in (
        ValueKind.String,
        ValueKind.Integer,
        ValueKind.Float,
        ValueKind.Rational,
        ValueKind.Control,
        ValueKind.Function,
    ):
        if kind.check(value):
            return kind
    return ValueKind.Any


def _check_value(kind: ValueKind, value: Any) -> Any:
    if not kind.check(value):
        raise TypeMismatchError(kind.describe(), value)
    return value


def _check_raw(kind: ValueKind, thing: Any) -> None:
    if isinstance(thing, Pattern):
        return
    elif isinstance(thing, (list, tuple)):
        for item in thing:
            _check_raw(kind, item)
    else:
        _check_value(kind, thing)


def typed_sequence(kind: ValueKind, thing: Any) -> Pattern[Any]:
    """Validate and lift a value into a pattern of a single kind.

    Raw scalars and nested lists are checked immediately. Patterns nested
    anywhere are wrapped so their values are checked as they are queried.

    Args:
        kind: The kind every value must belong to
        thing: A raw value, a (nested) list, or a pattern

    Returns:
        The sequenced pattern

    Raises:
        TypeMismatchError: If a raw value does not belong to the kind
    """
    _check_raw(kind, thing)
    pat = Pattern.sequence(thing)
    if kind == ValueKind.Any or not _contains_pattern(thing):
        return pat
    return pat.fmap(lambda v: _check_value(kind, v))


def _contains_pattern(thing: Any) -> bool:
    if isinstance(thing, Pattern):
        return True
    elif isinstance(thing, (list, tuple)):
        return any(_contains_pattern(item) for item in thing)
    else:
        return False


def _typed(kind: ValueKind) -> Callable[[Any], Pattern[Any]]:
    def wrapper(thing: Any) -> Pattern[Any]:
        return typed_sequence(kind, thing)

    wrapper.__name__ = f"{kind.describe()}_pattern"
    wrapper.__doc__ = f"Lift a value into a pattern of {kind.describe()} values."
    return wrapper


string_pattern = _typed(ValueKind.String)
integer_pattern = _typed(ValueKind.Integer)
float_pattern = _typed(ValueKind.Float)
rational_pattern = _typed(ValueKind.Rational)
control_pattern = _typed(ValueKind.Control)

S = string_pattern
I = integer_pattern  # noqa: E741
F = float_pattern
R = rational_pattern
C = control_pattern
