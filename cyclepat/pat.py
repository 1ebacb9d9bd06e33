"""Pattern type and combinator algebra for cyclepat.

A pattern is a pure function from a queried time span to the events active
in that span. Every combinator returns a new pattern wrapping the ones it
was built from; nothing is mutated after construction.
"""

from __future__ import annotations

import operator
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from fractions import Fraction
from typing import (
    Any,
    Callable,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    cast,
    override,
)

from cyclepat.arc import SpanFn, TimeFn, TimeSpan
from cyclepat.common import PartialMatchException, ZeroFactorError, identity
from cyclepat.constants import DEFAULT_PAN
from cyclepat.ev import Event
from cyclepat.time import CycleTime, frac_floor, numeric_frac

__all__ = ["MergeStrat", "Pattern", "WholeStrat"]

type Query[T] = Callable[[TimeSpan], Iterable[Event[T]]]
"""A raw query function, as wrapped by Pattern.from_query."""

type PatternFn[T, U] = Callable[[Pattern[T]], Pattern[U]]
"""A pattern transformation, as taken by every/when/off/jux."""


class WholeStrat(Enum):
    """How applicative combination picks the whole of a combined event."""

    Both = auto()
    """Intersection of both wholes (None if either is None)."""

    Left = auto()
    """The whole of the function side."""

    Right = auto()
    """The whole of the value side."""

    def choose(
        self, left: Optional[TimeSpan], right: Optional[TimeSpan]
    ) -> Optional[TimeSpan]:
        match self:
            case WholeStrat.Both:
                if left is None or right is None:
                    return None
                return left.intersect(right)
            case WholeStrat.Left:
                return left
            case WholeStrat.Right:
                return right
            case _:
                raise PartialMatchException(self)


class MergeStrat(Enum):
    """How monadic binding picks the whole of a flattened event."""

    Mixed = auto()
    """Intersection of outer and inner wholes (None if either is None)."""

    Inner = auto()
    """The whole of the inner event."""

    Outer = auto()
    """The whole of the outer event."""

    def choose(
        self, outer: Optional[TimeSpan], inner: Optional[TimeSpan]
    ) -> Optional[TimeSpan]:
        match self:
            case MergeStrat.Mixed:
                if outer is None or inner is None:
                    return None
                return outer.intersect(inner)
            case MergeStrat.Inner:
                return inner
            case MergeStrat.Outer:
                return outer
            case _:
                raise PartialMatchException(self)


def _is_patterned(thing: Any) -> bool:
    return isinstance(thing, (Pattern, list, tuple))


# sealed
class Pattern[T](metaclass=ABCMeta):
    """Discrete and continuous events as a function of time."""

    @abstractmethod
    def query(self, span: TimeSpan) -> List[Event[T]]:
        """Return all events active in the given span.

        Args:
            span: The time span to query

        Returns:
            The events whose parts fall within the span
        """
        raise NotImplementedError

    # =========================================================================
    # Constructors
    # =========================================================================

    @staticmethod
    def silence() -> Pattern[Any]:
        """Create the empty pattern.

        Returns:
            A pattern with no events in any span
        """
        return _SILENCE

    silent = silence

    @staticmethod
    def pure(value: T) -> Pattern[T]:
        """Create a pattern repeating a value once per cycle.

        Args:
            value: The value to repeat

        Returns:
            A pattern with one event per cycle whose whole is that cycle
        """
        return PurePattern(value)

    atom = pure

    @staticmethod
    def signal(fn: Callable[[CycleTime], T]) -> Pattern[T]:
        """Create a continuous pattern sampled at the midpoint of each query.

        Args:
            fn: Function from time to value

        Returns:
            A pattern with exactly one event (with no whole) per query
        """
        return SignalPattern(fn)

    @staticmethod
    def from_query(fn: Query[T]) -> Pattern[T]:
        """Wrap a raw query function as a pattern.

        Args:
            fn: A pure function from span to events

        Returns:
            A pattern delegating to the function
        """
        return QueryPattern(fn)

    @staticmethod
    def reify(thing: Any) -> Pattern[Any]:
        """Keep patterns as they are, lift anything else with pure."""
        if isinstance(thing, Pattern):
            return thing
        return Pattern.pure(thing)

    @staticmethod
    def slowcat(patterns: Iterable[Any]) -> Pattern[Any]:
        """Concatenate patterns, switching between them one per cycle.

        Cycle n is answered by patterns[n mod len] queried over the same
        absolute time, so each pattern keeps its own cycle numbering.

        Args:
            patterns: The patterns (or sequenceable values) to switch between

        Returns:
            The concatenated pattern, or silence if none were given
        """
        pats = tuple(Pattern.sequence(p) for p in patterns)
        if not pats:
            return Pattern.silence()
        return SlowcatPattern(pats).split_queries()

    @staticmethod
    def fastcat(patterns: Iterable[Any]) -> Pattern[Any]:
        """Concatenate patterns, squashing one cycle of each into one cycle.

        Args:
            patterns: The patterns (or sequenceable values) to concatenate

        Returns:
            The concatenated pattern, or silence if none were given
        """
        pats = tuple(patterns)
        if not pats:
            return Pattern.silence()
        return Pattern.slowcat(pats)._fast(len(pats))

    cat = fastcat

    @staticmethod
    def stack(patterns: Iterable[Any]) -> Pattern[Any]:
        """Play patterns simultaneously.

        Args:
            patterns: The patterns (or sequenceable values) to layer

        Returns:
            The layered pattern, or silence if none were given
        """
        pats = tuple(Pattern.sequence(p) for p in patterns)
        if not pats:
            return Pattern.silence()
        if len(pats) == 1:
            return pats[0]
        return StackPattern(pats)

    @staticmethod
    def sequence(thing: Any) -> Pattern[Any]:
        """Lift nested lists into a pattern.

        Lists (and tuples) become a fastcat of their sequenced items, so a
        nested list is squashed into its parent's step. Patterns are kept
        and any other value becomes a pure pattern.
        """
        return Pattern._sequence(thing)[0]

    sq = sequence

    @staticmethod
    def _sequence(thing: Any) -> Tuple[Pattern[Any], int]:
        """Sequence a value and report its step count."""
        if isinstance(thing, Pattern):
            return (thing, 1)
        elif isinstance(thing, (list, tuple)):
            return (Pattern.fastcat([Pattern.sequence(x) for x in thing]), len(thing))
        else:
            return (Pattern.pure(thing), 1)

    @staticmethod
    def polymeter(things: Sequence[Any], steps: Optional[int] = None) -> Pattern[Any]:
        """Align sequences of differing length to a common step grid.

        Every step lasts 1/steps of a cycle, and each input keeps its own
        native length, so shorter inputs wrap around within the cycle.

        Args:
            things: The inputs to sequence
            steps: Steps per cycle, defaulting to the first input's length

        Returns:
            The stacked, step-aligned pattern
        """
        sequences = [Pattern._sequence(thing) for thing in things]
        if not sequences:
            return Pattern.silence()
        if steps is None:
            steps = sequences[0][1]
        if steps <= 0:
            return Pattern.silence()
        pats: List[Pattern[Any]] = []
        for pat, length in sequences:
            if length == 0:
                continue
            if length == steps:
                pats.append(pat)
            else:
                pats.append(pat._fast(Fraction(steps, length)))
        return Pattern.stack(pats)

    pm = polymeter

    @staticmethod
    def polyrhythm(things: Sequence[Any], steps: Optional[int] = None) -> Pattern[Any]:
        """Stack sequences so that each full loop lasts the same time.

        Each input keeps its own step size. A loop lasts `steps` steps of the
        first input, which by default is one cycle.

        Args:
            things: The inputs to sequence
            steps: Loop length in steps of the first input

        Returns:
            The stacked pattern
        """
        sequences = [Pattern._sequence(thing) for thing in things]
        if not sequences:
            return Pattern.silence()
        base = sequences[0][1]
        if steps is None or base == 0:
            factor = Fraction(1)
        elif steps <= 0:
            return Pattern.silence()
        else:
            factor = Fraction(base, steps)
        return Pattern.stack(
            pat._fast(factor) for pat, length in sequences if length > 0
        )

    pr = polyrhythm

    # =========================================================================
    # Structure
    # =========================================================================

    def split_queries(self) -> Pattern[T]:
        """Split queries at cycle boundaries before delegating."""
        return SplitPattern(self)

    def with_query_span(self, fn: SpanFn) -> Pattern[T]:
        """Transform the query span before delegating."""
        return QuerySpanPattern(self, fn)

    def with_query_time(self, fn: TimeFn) -> Pattern[T]:
        """Transform both bounds of the query span before delegating."""
        return QuerySpanPattern(self, lambda span: span.with_time(fn))

    def with_event_span(self, fn: SpanFn) -> Pattern[T]:
        """Transform the spans of every resulting event."""
        return EventSpanPattern(self, fn)

    def with_event_time(self, fn: TimeFn) -> Pattern[T]:
        """Transform both bounds of the spans of every resulting event."""
        return EventSpanPattern(self, lambda span: span.with_time(fn))

    def with_value[U](self, fn: Callable[[T], U]) -> Pattern[U]:
        """Map a function over the pattern values.

        Args:
            fn: The function to apply to each value

        Returns:
            A new pattern with transformed values
        """
        return MapPattern(self, fn)

    def fmap[U](self, fn: Callable[[T], U]) -> Pattern[U]:
        return self.with_value(fn)

    def map[U](self, fn: Callable[[T], U]) -> Pattern[U]:
        return self.with_value(fn)

    def filter_events(self, predicate: Callable[[Event[T]], bool]) -> Pattern[T]:
        """Keep only the events passing the predicate."""
        return FilterPattern(self, predicate)

    def filter_values(self, predicate: Callable[[T], bool]) -> Pattern[T]:
        """Keep only the events whose values pass the predicate."""
        return FilterPattern(self, lambda ev: predicate(ev.value))

    def onsets_only(self) -> Pattern[T]:
        """Keep only the event fragments that contain their onset."""
        return FilterPattern(self, Event.has_onset)

    def first_cycle(self) -> List[Event[T]]:
        return self.query(TimeSpan.cycle(0))

    # =========================================================================
    # Time
    # =========================================================================

    def _fast(self, factor: Any) -> Pattern[T]:
        fac = numeric_frac(factor)
        if fac == 0:
            raise ZeroFactorError("fast")
        elif fac < 0:
            return self._fast(-fac).rev()
        elif fac == 1:
            return self
        fast_query = self.with_query_time(lambda t: CycleTime(t * fac))
        return fast_query.with_event_time(lambda t: CycleTime(t / fac))

    def _slow(self, factor: Any) -> Pattern[T]:
        fac = numeric_frac(factor)
        if fac == 0:
            raise ZeroFactorError("slow")
        return self._fast(1 / fac)

    def _early(self, offset: Any) -> Pattern[T]:
        off = numeric_frac(offset)
        if off == 0:
            return self
        early_query = self.with_query_time(lambda t: CycleTime(t + off))
        return early_query.with_event_time(lambda t: CycleTime(t - off))

    def _late(self, offset: Any) -> Pattern[T]:
        return self._early(-numeric_frac(offset))

    def _patterned[U](self, param: Any, fn: Callable[[Any], Pattern[U]]) -> Pattern[U]:
        return Pattern.sequence(param).fmap(fn).inner_join()

    def fast(self, factor: Any) -> Pattern[T]:
        """Speed up the pattern by a factor.

        The factor may be a number, a pattern of numbers, or a (nested) list
        that is sequenced into one. Patterned factors take their structure
        from the sped-up pattern, clipped to each factor event.

        Raises:
            ZeroFactorError: If a factor is zero
        """
        if _is_patterned(factor):
            return self._patterned(factor, self._fast)
        return self._fast(factor)

    def slow(self, factor: Any) -> Pattern[T]:
        """Slow down the pattern by a factor, patterned like fast.

        Raises:
            ZeroFactorError: If a factor is zero
        """
        if _is_patterned(factor):
            return self._patterned(factor, self._slow)
        return self._slow(factor)

    def early(self, offset: Any) -> Pattern[T]:
        """Shift the pattern earlier in time, patterned like fast."""
        if _is_patterned(offset):
            return self._patterned(offset, self._early)
        return self._early(offset)

    def late(self, offset: Any) -> Pattern[T]:
        """Shift the pattern later in time, patterned like fast."""
        if _is_patterned(offset):
            return self._patterned(offset, self._late)
        return self._late(offset)

    def rev(self) -> Pattern[T]:
        """Reverse each cycle."""
        return RevPattern(self).split_queries()

    # =========================================================================
    # Conditional and layering transformations
    # =========================================================================

    def _every(self, count: Any, fn: PatternFn[T, T]) -> Pattern[T]:
        n = int(count)
        if n <= 0:
            return self
        return Pattern.slowcat([fn(self)] + [self] * (n - 1))

    def every(self, count: Any, fn: PatternFn[T, T]) -> Pattern[T]:
        """Apply a transformation on every cycle divisible by count."""
        if _is_patterned(count):
            return self._patterned(count, lambda n: self._every(n, fn))
        return self._every(count, fn)

    def when(self, binary: Any, fn: PatternFn[T, T]) -> Pattern[T]:
        """Apply a transformation only where a boolean pattern is true.

        Args:
            binary: A boolean pattern, or values sequenced into one
            fn: The transformation to apply

        Returns:
            The transformed pattern where binary is true, this one elsewhere
        """
        binary_pat: Pattern[Any] = Pattern.sequence(binary)
        true_pat = binary_pat.filter_values(bool)
        false_pat = binary_pat.filter_values(lambda v: not v)
        with_pat = true_pat.fmap(lambda _: identity).app_right(fn(self))
        without_pat = false_pat.fmap(lambda _: identity).app_right(self)
        return Pattern.stack([with_pat, without_pat])

    def superimpose(self, fn: PatternFn[T, T]) -> Pattern[T]:
        """Layer a transformed copy on top of this pattern."""
        return Pattern.stack([self, fn(self)])

    def off(self, offset: Any, fn: PatternFn[T, T]) -> Pattern[T]:
        """Layer a delayed, transformed copy on top of this pattern."""
        return Pattern.stack([self, fn(self.late(offset))])

    def jux(self, fn: PatternFn[Any, Any], by: Any = 1) -> Pattern[Any]:
        """Split control patterns across the stereo field.

        The left copy is panned by -by/2 and the right copy, with fn applied,
        by +by/2, starting from each value's pan (default 0.5).
        """
        half = float(numeric_frac(by)) / 2

        def pan_by(delta: float) -> Callable[[Mapping[str, Any]], Mapping[str, Any]]:
            def wrapper(val: Mapping[str, Any]) -> Mapping[str, Any]:
                return {**val, "pan": val.get("pan", DEFAULT_PAN) + delta}

            return wrapper

        this = cast(Pattern[Mapping[str, Any]], self)
        left = this.with_value(pan_by(-half))
        right = this.with_value(pan_by(half))
        return Pattern.stack([left, fn(right)])

    def append(self, other: Any) -> Pattern[Any]:
        """Concatenate another pattern within the same cycle."""
        return Pattern.fastcat([self, other])

    # =========================================================================
    # Applicative and monadic combination
    # =========================================================================

    def _app_whole[B, C](self, strat: WholeStrat, vals: Any) -> Pattern[C]:
        funs = cast(Pattern[Callable[[B], C]], self)
        return AppPattern(funs, Pattern.sequence(vals), strat)

    def app[B, C](self, vals: Any) -> Pattern[C]:
        """Apply a pattern of functions to a pattern of values.

        Wholes are intersected. Raw values are lifted with `sequence`, so a
        list becomes a sub-sequence.
        """
        return self._app_whole(WholeStrat.Both, vals)

    def app_both[B, C](self, vals: Any) -> Pattern[C]:
        return self._app_whole(WholeStrat.Both, vals)

    def app_left[B, C](self, vals: Any) -> Pattern[C]:
        """Apply functions to values, keeping the structure of the functions."""
        return self._app_whole(WholeStrat.Left, vals)

    def app_right[B, C](self, vals: Any) -> Pattern[C]:
        """Apply functions to values, keeping the structure of the values."""
        return self._app_whole(WholeStrat.Right, vals)

    def _bind_whole[U](
        self, strat: MergeStrat, fn: Callable[[T], Pattern[U]]
    ) -> Pattern[U]:
        return BindPattern(self, fn, strat)

    def bind[U](self, fn: Callable[[T], Pattern[U]]) -> Pattern[U]:
        """Flatten with wholes intersected between outer and inner events."""
        return self._bind_whole(MergeStrat.Mixed, fn)

    def inner_bind[U](self, fn: Callable[[T], Pattern[U]]) -> Pattern[U]:
        """Flatten with wholes taken from the inner events."""
        return self._bind_whole(MergeStrat.Inner, fn)

    def outer_bind[U](self, fn: Callable[[T], Pattern[U]]) -> Pattern[U]:
        """Flatten with wholes taken from the outer events."""
        return self._bind_whole(MergeStrat.Outer, fn)

    def join(self) -> Pattern[Any]:
        return self.bind(cast(Callable[[T], Pattern[Any]], identity))

    def inner_join(self) -> Pattern[Any]:
        return self.inner_bind(cast(Callable[[T], Pattern[Any]], identity))

    def outer_join(self) -> Pattern[Any]:
        return self.outer_bind(cast(Callable[[T], Pattern[Any]], identity))

    # =========================================================================
    # Operators
    # =========================================================================

    def _op(self, other: Any, op: Callable[[Any, Any], Any]) -> Pattern[Any]:
        return self.fmap(lambda x: lambda y: op(x, y)).app_left(other)

    def __add__(self, other: Any) -> Pattern[Any]:
        return self._op(other, operator.add)

    def __radd__(self, other: Any) -> Pattern[Any]:
        return self._op(other, lambda x, y: y + x)

    def __sub__(self, other: Any) -> Pattern[Any]:
        return self._op(other, operator.sub)

    def __rsub__(self, other: Any) -> Pattern[Any]:
        return self._op(other, lambda x, y: y - x)

    def __lshift__(self, other: Any) -> Pattern[Any]:
        """Merge control maps, with keys from the left winning."""
        return self._op(other, lambda x, y: {**y, **x})

    def __rshift__(self, other: Any) -> Pattern[Any]:
        """Merge control maps, with keys from the right winning."""
        return self._op(other, lambda x, y: {**x, **y})


@dataclass(frozen=True)
class SilentPattern[T](Pattern[T]):
    """Pattern with no events."""

    @override
    def query(self, span: TimeSpan) -> List[Event[T]]:
        return []


_SILENCE: Pattern[Any] = SilentPattern()


@dataclass(frozen=True)
class PurePattern[T](Pattern[T]):
    """One event per cycle, each fragment tied to its full cycle."""

    value: T

    @override
    def query(self, span: TimeSpan) -> List[Event[T]]:
        return [
            Event(TimeSpan.cycle(cyc), piece, self.value)
            for cyc, piece in span.split_cycles()
        ]


@dataclass(frozen=True)
class SignalPattern[T](Pattern[T]):
    """Continuous values sampled at the midpoint of the query."""

    fn: Callable[[CycleTime], T]

    @override
    def query(self, span: TimeSpan) -> List[Event[T]]:
        return [Event(None, span, self.fn(span.midpoint()))]


@dataclass(frozen=True)
class QueryPattern[T](Pattern[T]):
    """Pattern backed by an arbitrary query function."""

    fn: Query[T]

    @override
    def query(self, span: TimeSpan) -> List[Event[T]]:
        return list(self.fn(span))


@dataclass(frozen=True)
class SplitPattern[T](Pattern[T]):
    """Queries the source one cycle at a time."""

    source: Pattern[T]

    @override
    def query(self, span: TimeSpan) -> List[Event[T]]:
        return [ev for piece in span.span_cycles() for ev in self.source.query(piece)]


@dataclass(frozen=True)
class QuerySpanPattern[T](Pattern[T]):
    """Transforms the query span before delegating."""

    source: Pattern[T]
    fn: SpanFn

    @override
    def query(self, span: TimeSpan) -> List[Event[T]]:
        return self.source.query(self.fn(span))


@dataclass(frozen=True)
class EventSpanPattern[T](Pattern[T]):
    """Transforms the spans of the resulting events."""

    source: Pattern[T]
    fn: SpanFn

    @override
    def query(self, span: TimeSpan) -> List[Event[T]]:
        return [ev.with_span(self.fn) for ev in self.source.query(span)]


@dataclass(frozen=True)
class MapPattern[T, U](Pattern[U]):
    """Maps a function over values."""

    source: Pattern[T]
    fn: Callable[[T], U]

    @override
    def query(self, span: TimeSpan) -> List[Event[U]]:
        return [ev.with_value(self.fn) for ev in self.source.query(span)]


@dataclass(frozen=True)
class FilterPattern[T](Pattern[T]):
    """Keeps the events passing a predicate."""

    source: Pattern[T]
    predicate: Callable[[Event[T]], bool]

    @override
    def query(self, span: TimeSpan) -> List[Event[T]]:
        return [ev for ev in self.source.query(span) if self.predicate(ev)]


@dataclass(frozen=True)
class SlowcatPattern[T](Pattern[T]):
    """Picks one child per cycle; expects queries within a single cycle."""

    children: Tuple[Pattern[T], ...]

    @override
    def query(self, span: TimeSpan) -> List[Event[T]]:
        if not self.children:
            return []
        child = self.children[frac_floor(span.start) % len(self.children)]
        return child.query(span)


@dataclass(frozen=True)
class StackPattern[T](Pattern[T]):
    """Plays all children at once."""

    children: Tuple[Pattern[T], ...]

    @override
    def query(self, span: TimeSpan) -> List[Event[T]]:
        return [ev for child in self.children for ev in child.query(span)]


@dataclass(frozen=True)
class AppPattern[B, C](Pattern[C]):
    """Applies function events to the value events they overlap."""

    funs: Pattern[Callable[[B], C]]
    vals: Pattern[B]
    strat: WholeStrat

    @override
    def query(self, span: TimeSpan) -> List[Event[C]]:
        fun_events = self.funs.query(span)
        val_events = self.vals.query(span)
        result: List[Event[C]] = []
        for fun_ev in fun_events:
            for val_ev in val_events:
                part = fun_ev.part.maybe_intersect(val_ev.part)
                if part is not None:
                    whole = self.strat.choose(fun_ev.whole, val_ev.whole)
                    result.append(Event(whole, part, fun_ev.value(val_ev.value)))
        return result


@dataclass(frozen=True)
class BindPattern[A, B](Pattern[B]):
    """Queries the pattern produced by each outer event over its part."""

    source: Pattern[A]
    fn: Callable[[A], Pattern[B]]
    strat: MergeStrat

    @override
    def query(self, span: TimeSpan) -> List[Event[B]]:
        result: List[Event[B]] = []
        for outer in self.source.query(span):
            inner_pat = self.fn(outer.value)
            for inner in inner_pat.query(outer.part):
                whole = self.strat.choose(outer.whole, inner.whole)
                result.append(Event(whole, inner.part, inner.value))
        return result


@dataclass(frozen=True)
class RevPattern[T](Pattern[T]):
    """Reflects time within the cycle of the query; expects single-cycle queries."""

    source: Pattern[T]

    @override
    def query(self, span: TimeSpan) -> List[Event[T]]:
        cycle = span.cycle_pos()
        mirror = cycle + cycle + 1

        def reflect(to_reflect: TimeSpan) -> TimeSpan:
            return TimeSpan(
                CycleTime(mirror - to_reflect.stop),
                CycleTime(mirror - to_reflect.start),
            )

        return [ev.with_span(reflect) for ev in self.source.query(reflect(span))]
