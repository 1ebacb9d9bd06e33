from __future__ import annotations

from functools import reduce
from typing import Any, Iterable, Mapping

from cyclepat.pat import Pattern
from cyclepat.types import ValueKind, typed_sequence

# =============================================================================
# Type Aliases
# =============================================================================

type ControlMap = Mapping[str, Any]
"""Parameter map carried by control patterns (e.g. {"s": "bd", "gain": 0.8})."""

type ControlPattern = Pattern[ControlMap]
"""Pattern of control maps, as consumed by the transports."""


# =============================================================================
# Control Builders
# =============================================================================


def make_control(name: str, thing: Any, kind: ValueKind = ValueKind.Any) -> ControlPattern:
    """Build a control pattern assigning values to a single parameter.

    Args:
        name: The parameter name
        thing: A raw value, a (nested) list, or a pattern of values
        kind: The kind every value must belong to

    Returns:
        A pattern of single-entry control maps

    Raises:
        TypeMismatchError: If a raw value does not belong to the kind
    """
    return typed_sequence(kind, thing).fmap(lambda value: {name: value})


def sound(thing: Any) -> ControlPattern:
    """Sample or synth names, e.g. sound(["bd", "sn"])."""
    return make_control("s", thing, ValueKind.String)


s = sound


def vowel(thing: Any) -> ControlPattern:
    return make_control("vowel", thing, ValueKind.String)


def n(thing: Any) -> ControlPattern:
    """Sample index or note number."""
    return make_control("n", thing)


def note(thing: Any) -> ControlPattern:
    """Note numbers (or names, passed through to the transport)."""
    return make_control("note", thing)


def gain(thing: Any) -> ControlPattern:
    return make_control("gain", thing, ValueKind.Float)


def pan(thing: Any) -> ControlPattern:
    """Stereo position from 0 (left) to 1 (right)."""
    return make_control("pan", thing, ValueKind.Float)


def speed(thing: Any) -> ControlPattern:
    return make_control("speed", thing, ValueKind.Float)


def rate(thing: Any) -> ControlPattern:
    return make_control("rate", thing, ValueKind.Float)


def room(thing: Any) -> ControlPattern:
    return make_control("room", thing, ValueKind.Float)


def size(thing: Any) -> ControlPattern:
    return make_control("size", thing, ValueKind.Float)


def velocity(thing: Any) -> ControlPattern:
    """MIDI velocities (0-127)."""
    return make_control("velocity", thing, ValueKind.Integer)


def channel(thing: Any) -> ControlPattern:
    """MIDI channels (0-15)."""
    return make_control("channel", thing, ValueKind.Integer)


# =============================================================================
# Combining Control Patterns
# =============================================================================


def combine(left: ControlPattern, right: ControlPattern) -> ControlPattern:
    """Merge two control patterns with the structure of the left one.

    Keys present in both maps take the value from the right pattern.
    """
    return left >> right


def combine_all(patterns: Iterable[ControlPattern]) -> ControlPattern:
    """Merge control patterns left to right; silence if there are none."""
    pats = list(patterns)
    if not pats:
        return Pattern.silence()
    return reduce(combine, pats)
