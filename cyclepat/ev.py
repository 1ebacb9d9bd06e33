"""Event type for representing timed values in cyclepat patterns."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from cyclepat.arc import SpanFn, TimeSpan
from cyclepat.time import CycleDelta, CycleTime


@dataclass(frozen=True)
class Event[T]:
    """A value active during the `part` span.

    The part may be a fragment of a larger `whole`, in which case it never
    extends outside of it. If `whole` is None the event is a sample of a
    continuously changing value, taken at the midpoint of `part`.

    Args:
        whole: The full extent of the event, or None for continuous values
        part: The fragment of the event that falls inside the query
        value: The value of the event
    """

    whole: Optional[TimeSpan]
    part: TimeSpan
    value: T

    def has_onset(self) -> bool:
        """True if this fragment contains the start of its whole."""
        return self.whole is not None and self.whole.start == self.part.start

    def has_offset(self) -> bool:
        """True if this fragment contains the end of its whole."""
        return self.whole is not None and self.whole.stop == self.part.stop

    def is_continuous(self) -> bool:
        return self.whole is None

    def whole_or_part(self) -> TimeSpan:
        return self.whole if self.whole is not None else self.part

    def valid(self) -> bool:
        """Check that the part lies within the whole."""
        return self.whole is None or self.whole.contains(self.part)

    def with_span(self, fn: SpanFn) -> Event[T]:
        """Apply a span transformation to the part and, if present, the whole."""
        whole = None if self.whole is None else fn(self.whole)
        return Event(whole, fn(self.part), self.value)

    def with_value[U](self, fn: Callable[[T], U]) -> Event[U]:
        """Apply a function to the value, keeping the timing."""
        return Event(self.whole, self.part, fn(self.value))

    def fmap[U](self, fn: Callable[[T], U]) -> Event[U]:
        return self.with_value(fn)

    def shift(self, delta: CycleDelta) -> Event[T]:
        return self.with_span(lambda span: span.shift(delta))

    def __str__(self) -> str:
        whole = "~" if self.whole is None else str(self.whole)
        return f"Event({whole}, {self.part}, {self.value!r})"


def _event_sort_key(ev: Event[object]) -> Tuple[CycleTime, CycleTime, bool, TimeSpan]:
    whole = ev.whole_or_part()
    return (ev.part.start, ev.part.stop, ev.whole is None, whole)


def sort_events[T](events: Iterable[Event[T]]) -> List[Event[T]]:
    """Order events by part, then by whole.

    Values are never compared, so events of any value type can be sorted.
    The sort is stable: events with equal timing keep their query order.
    """
    return sorted(events, key=_event_sort_key)
