"""Property-based tests for TimeSpan and Pattern using Hypothesis."""

from fractions import Fraction
from typing import Any, List, Tuple

from hypothesis import assume, given
from hypothesis import strategies as st

from cyclepat.arc import TimeSpan
from cyclepat.pat import Pattern
from cyclepat.time import frac_floor
from tests.cyclepat.hypo import configure_hypo

configure_hypo()

_times = st.fractions(min_value=-8, max_value=8, max_denominator=12)

_nested = st.recursive(
    st.integers(min_value=0, max_value=9),
    lambda children: st.lists(children, min_size=1, max_size=4),
    max_leaves=12,
)


@st.composite
def span_strategy(draw: st.DrawFn) -> TimeSpan:
    """Generate a non-empty span."""
    start = draw(_times)
    stop = draw(_times)
    assume(start < stop)
    return TimeSpan(start, stop)


@st.composite
def pattern_strategy(draw: st.DrawFn) -> Pattern[Any]:
    """Generate a sequenced pattern, possibly sped up, slowed down or shifted."""
    pat = Pattern.sequence(draw(_nested))
    transform = draw(st.sampled_from(["none", "fast", "slow", "late", "slowcat"]))
    match transform:
        case "fast":
            pat = pat.fast(draw(st.integers(min_value=1, max_value=3)))
        case "slow":
            pat = pat.slow(draw(st.integers(min_value=1, max_value=3)))
        case "late":
            pat = pat.late(draw(st.fractions(min_value=0, max_value=1, max_denominator=8)))
        case "slowcat":
            pat = Pattern.slowcat([pat, Pattern.sequence(draw(_nested))])
    return pat


def _flat(pat: Pattern[Any], span: TimeSpan) -> List[Tuple[Any, ...]]:
    return sorted(
        (ev.whole, ev.part, ev.value) for ev in pat.query(span)
    )


@given(span_strategy())
def test_span_cycles_cover(span: TimeSpan) -> None:
    """Sub-spans are contiguous, each within one cycle, and cover the span."""
    pieces = span.span_cycles()
    assert pieces
    assert pieces[0].start == span.start
    assert pieces[-1].stop == span.stop
    for left, right in zip(pieces, pieces[1:]):
        assert left.stop == right.start
    for piece in pieces:
        assert piece.start < piece.stop
        assert frac_floor(piece.start) == piece.cycle_pos()
        assert piece.stop <= piece.cycle_pos() + 1


@given(_nested)
def test_fastcat_single_identity(thing: Any) -> None:
    pat = Pattern.sequence(thing)
    assert Pattern.fastcat([pat]).first_cycle() == pat.first_cycle()


@given(st.lists(_nested, min_size=1, max_size=4))
def test_fastcat_is_fast_slowcat(things: List[Any]) -> None:
    pats = [Pattern.sequence(t) for t in things]
    fast = Pattern.fastcat(pats).first_cycle()
    slow = Pattern.slowcat(pats).fast(len(pats)).first_cycle()
    assert fast == slow


@given(pattern_strategy(), st.integers(min_value=-3, max_value=3))
def test_rev_idempotent(pat: Pattern[Any], cycle: int) -> None:
    span = TimeSpan.cycle(cycle)
    assert _flat(pat.rev().rev(), span) == _flat(pat, span)


@given(pattern_strategy(), pattern_strategy(), span_strategy())
def test_stack_commutative(a: Pattern[Any], b: Pattern[Any], span: TimeSpan) -> None:
    assert _flat(Pattern.stack([a, b]), span) == _flat(Pattern.stack([b, a]), span)


@given(pattern_strategy(), span_strategy())
def test_events_valid(pat: Pattern[Any], span: TimeSpan) -> None:
    """Every event part lies within its whole and within the query."""
    for ev in pat.query(span):
        assert ev.valid()
        assert span.contains(ev.part)


@given(pattern_strategy(), span_strategy())
def test_early_late_inverse(pat: Pattern[Any], span: TimeSpan) -> None:
    offset = Fraction(1, 3)
    assert _flat(pat.early(offset).late(offset), span) == _flat(pat, span)


@given(st.integers(min_value=0, max_value=9), span_strategy())
def test_pure_onsets_per_cycle(value: int, span: TimeSpan) -> None:
    """Pure patterns have one onset for every cycle start inside the query."""
    onsets = Pattern.pure(value).onsets_only().query(span)
    starts = [ev.whole.start for ev in onsets if ev.whole is not None]
    expected = [
        Fraction(c) for c in range(frac_floor(span.start), frac_floor(span.stop) + 1)
        if span.start <= c < span.stop
    ]
    assert starts == expected
