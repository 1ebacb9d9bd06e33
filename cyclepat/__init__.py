"""Cyclepat: cyclic patterns of events over exact rational time."""

from cyclepat.arc import TimeSpan
from cyclepat.combinators import (
    channel,
    combine,
    combine_all,
    gain,
    make_control,
    n,
    note,
    pan,
    rate,
    room,
    s,
    size,
    sound,
    speed,
    velocity,
    vowel,
)
from cyclepat.common import (
    InvalidTimeError,
    PatternError,
    TypeMismatchError,
    ZeroFactorError,
)
from cyclepat.ev import Event
from cyclepat.pat import Pattern
from cyclepat.types import C, F, I, R, S, ValueKind

pure = Pattern.pure
silence = Pattern.silence
signal = Pattern.signal
slowcat = Pattern.slowcat
fastcat = Pattern.fastcat
stack = Pattern.stack
sequence = Pattern.sequence
polymeter = Pattern.polymeter
polyrhythm = Pattern.polyrhythm

__all__ = [
    "TimeSpan",
    "Event",
    "Pattern",
    "pure",
    "silence",
    "signal",
    "slowcat",
    "fastcat",
    "stack",
    "sequence",
    "polymeter",
    "polyrhythm",
    "ValueKind",
    "S",
    "I",
    "F",
    "R",
    "C",
    "make_control",
    "sound",
    "s",
    "vowel",
    "n",
    "note",
    "gain",
    "pan",
    "speed",
    "rate",
    "room",
    "size",
    "velocity",
    "channel",
    "combine",
    "combine_all",
    "PatternError",
    "InvalidTimeError",
    "TypeMismatchError",
    "ZeroFactorError",
]
