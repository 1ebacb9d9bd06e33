"""TimeSpan type for representing intervals of cycle time."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from fractions import Fraction
from typing import Callable, Iterator, List, Optional, Tuple, Union

from cyclepat.common import format_fraction
from cyclepat.time import (
    CycleDelta,
    CycleTime,
    TimeLike,
    frac_floor,
    mk_cycle_time,
    next_sam,
    sam,
)

type TimeFn = Callable[[CycleTime], CycleTime]
"""A transformation of a single point in time."""

type SpanFn = Callable[[TimeSpan], TimeSpan]
"""A transformation of a whole span."""


@dataclass(frozen=True, order=True)
class TimeSpan:
    """An interval [start, stop) of cycle time.

    Bounds are converted to exact fractions on construction. Zero-width spans
    are legal and represent instants; most operations treat a span with
    stop <= start as empty.

    Args:
        start: The start of the interval
        stop: The end of the interval
    """

    start: CycleTime
    stop: CycleTime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", mk_cycle_time(self.start))
        object.__setattr__(self, "stop", mk_cycle_time(self.stop))

    @staticmethod
    def mk(start: TimeLike, stop: TimeLike) -> TimeSpan:
        """Create a span from any two exactly-convertible values.

        Raises:
            InvalidTimeError: If a bound cannot be converted
        """
        return TimeSpan(mk_cycle_time(start), mk_cycle_time(stop))

    @staticmethod
    def empty() -> TimeSpan:
        return _EMPTY_SPAN

    @staticmethod
    def cycle(cyc: int) -> TimeSpan:
        """The span of a full cycle, from cyc to cyc + 1."""
        return TimeSpan(CycleTime(Fraction(cyc)), CycleTime(Fraction(cyc + 1)))

    @staticmethod
    def whole_cycle(t: TimeLike) -> TimeSpan:
        """The full cycle containing the given time."""
        ct = mk_cycle_time(t)
        return TimeSpan(sam(ct), next_sam(ct))

    @staticmethod
    def reify(thing: Union[TimeSpan, TimeLike]) -> TimeSpan:
        """Lift a point in time to a zero-width span, keeping spans as they are."""
        if isinstance(thing, TimeSpan):
            return thing
        ct = mk_cycle_time(thing)
        return TimeSpan(ct, ct)

    @staticmethod
    def union_all(spans: Iterable[TimeSpan]) -> TimeSpan:
        out = TimeSpan.empty()
        for span in spans:
            out = out.union(span)
        return out

    def length(self) -> CycleDelta:
        return CycleDelta(self.stop - self.start)

    def null(self) -> bool:
        """True if the span covers no time (stop <= start)."""
        return self.stop <= self.start

    def midpoint(self) -> CycleTime:
        return CycleTime(self.start + (self.stop - self.start) / 2)

    def cycle_pos(self) -> CycleTime:
        """The start of the cycle containing the start of this span."""
        return sam(self.start)

    def split_cycles(self) -> Iterator[Tuple[int, TimeSpan]]:
        """Split the span at cycle boundaries.

        Yields:
            Tuples of (cycle_index, piece), in order; each piece lies within
            a single cycle and together they cover the span exactly
        """
        start = self.start
        stop = self.stop
        while start < stop:
            cyc = frac_floor(start)
            boundary = CycleTime(Fraction(cyc + 1))
            if stop <= boundary:
                yield (cyc, TimeSpan(start, stop))
                return
            yield (cyc, TimeSpan(start, boundary))
            start = boundary

    def span_cycles(self) -> List[TimeSpan]:
        """Split the span at cycle boundaries.

        Returns:
            An ordered, contiguous, non-overlapping list of sub-spans each
            within one cycle, or [] if the span is empty
        """
        return [piece for _, piece in self.split_cycles()]

    def with_time(self, fn: TimeFn) -> TimeSpan:
        """Apply a time transformation to both bounds."""
        return TimeSpan(fn(self.start), fn(self.stop))

    def shift(self, delta: CycleDelta) -> TimeSpan:
        return TimeSpan(CycleTime(self.start + delta), CycleTime(self.stop + delta))

    def scale(self, factor: Fraction) -> TimeSpan:
        return TimeSpan(CycleTime(self.start * factor), CycleTime(self.stop * factor))

    def intersect(self, other: TimeSpan) -> TimeSpan:
        """The overlap of two spans, which may be degenerate (stop < start)."""
        return TimeSpan(max(self.start, other.start), min(self.stop, other.stop))

    def maybe_intersect(self, other: TimeSpan) -> Optional[TimeSpan]:
        """The overlap of two spans, or None if they do not overlap.

        A zero-width overlap is kept only when it does not sit on the end of
        a non-zero-width span; spans that merely touch do not overlap.
        """
        out = self.intersect(other)
        if out.stop < out.start:
            return None
        if out.start == out.stop:
            if out.start == self.stop and self.start < self.stop:
                return None
            if out.start == other.stop and other.start < other.stop:
                return None
        return out

    def union(self, other: TimeSpan) -> TimeSpan:
        if self.null():
            return other
        elif other.null():
            return self
        else:
            return TimeSpan(min(self.start, other.start), max(self.stop, other.stop))

    def contains(self, other: Union[TimeSpan, TimeLike]) -> bool:
        """True if the other span (or point in time) lies within this span."""
        span = TimeSpan.reify(other)
        return self.start <= span.start and span.stop <= self.stop

    def __str__(self) -> str:
        return f"TimeSpan({format_fraction(self.start)}, {format_fraction(self.stop)})"


_EMPTY_SPAN = TimeSpan(CycleTime(Fraction(0)), CycleTime(Fraction(0)))
