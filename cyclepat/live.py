"""Live pattern playback.

A LiveSystem owns a set of orbits (numbered output slots), each holding a
pattern. A loop thread advances cycle time in small windows, queries the
onsets of every audible orbit, and hands them to a processor that turns them
into transport messages for a backend.
"""

from __future__ import annotations

import logging
import os
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass, replace
from fractions import Fraction
from threading import Event, Lock, Thread
from typing import Callable, Dict, List, Mapping, NewType, Optional, Sequence, Tuple, override

from cyclepat.arc import TimeSpan
from cyclepat.constants import (
    CPS_ENV_VAR,
    DEFAULT_BEATS_PER_CYCLE,
    DEFAULT_CPS,
    DEFAULT_GENERATIONS_PER_CYCLE,
    DEFAULT_LATENCY,
)
from cyclepat.ev import Event as PatEvent
from cyclepat.ev import sort_events
from cyclepat.pat import Pattern
from cyclepat.time import (
    Bpc,
    Cps,
    CycleDelta,
    CycleTime,
    PosixDelta,
    PosixTime,
    mk_cps,
    now,
    numeric_frac,
)

logger = logging.getLogger(__name__)

Orbit = NewType("Orbit", int)

type Clock = Callable[[], PosixTime]


# =============================================================================
# Timing
# =============================================================================


def _env_cps() -> Cps:
    raw = os.environ.get(CPS_ENV_VAR)
    if raw is None or not raw.strip():
        return Cps(DEFAULT_CPS)
    return mk_cps(numeric_frac(raw))


@dataclass(frozen=True)
class Timing:
    """Configuration for timing calculations (frozen for immutability)."""

    cps: Cps
    """Current cycles per second (tempo)."""

    beats_per_cycle: Bpc
    """Number of beats in one cycle."""

    generations_per_cycle: int
    """Number of query windows per cycle."""

    latency: PosixDelta
    """Seconds added to the wall time of every generated event."""

    @staticmethod
    def initial(
        cps: Optional[Cps] = None,
        beats_per_cycle: Optional[Bpc] = None,
        generations_per_cycle: Optional[int] = None,
        latency: Optional[PosixDelta] = None,
    ) -> Timing:
        """Create a Timing instance with default values.

        The default tempo may be overridden with the CYCLEPAT_CPS environment
        variable (e.g. "9/16" or "0.5").

        Raises:
            ValueError: If the tempo is not positive or cannot be parsed
        """
        return Timing(
            cps=cps if cps is not None else _env_cps(),
            beats_per_cycle=(
                beats_per_cycle
                if beats_per_cycle is not None
                else Bpc(DEFAULT_BEATS_PER_CYCLE)
            ),
            generations_per_cycle=(
                generations_per_cycle
                if generations_per_cycle is not None
                else DEFAULT_GENERATIONS_PER_CYCLE
            ),
            latency=latency if latency is not None else PosixDelta(DEFAULT_LATENCY),
        )

    def set_cps(self, cps: Cps) -> Timing:
        return replace(self, cps=cps)

    def generation_length(self) -> CycleDelta:
        """Length of one query window in cycles."""
        return CycleDelta(Fraction(1, self.generations_per_cycle))

    def generation_interval(self) -> PosixDelta:
        """Length of one query window in seconds."""
        return PosixDelta(float(self.generation_length() / self.cps))


@dataclass(frozen=True)
class Instant:
    """A moment in cycle time paired with the wall time it plays at."""

    cycle_time: CycleTime
    """The cycle time for this instant."""

    cps: Cps
    """Cycles per second at this instant."""

    posix_time: PosixTime
    """Wall time at which cycle_time plays, latency included."""

    def posix_at(self, t: CycleTime) -> PosixTime:
        """Convert a cycle time near this instant into wall time."""
        return PosixTime(self.posix_time + float(t - self.cycle_time) / float(self.cps))


# =============================================================================
# Orbits
# =============================================================================


@dataclass(frozen=True)
class OrbitState[T]:
    """State for a single orbit (output slot)."""

    pattern: Optional[Pattern[T]]
    """Current pattern playing on this orbit."""

    muted: bool
    """Whether this orbit is muted."""

    solo: bool
    """Whether this orbit is soloed."""

    @staticmethod
    def initial() -> OrbitState[T]:
        return OrbitState(pattern=None, muted=False, solo=False)


def audible_orbits[T](
    orbits: Mapping[Orbit, OrbitState[T]],
) -> List[Tuple[Orbit, Pattern[T]]]:
    """The orbits that should sound, in orbit order.

    If any orbit is soloed only soloed orbits sound. Muted orbits and orbits
    without a pattern never sound.
    """
    any_solo = any(state.solo for state in orbits.values())
    audible: List[Tuple[Orbit, Pattern[T]]] = []
    for orbit in sorted(orbits):
        state = orbits[orbit]
        if state.pattern is None or state.muted:
            continue
        if any_solo and not state.solo:
            continue
        audible.append((orbit, state.pattern))
    return audible


# =============================================================================
# Processors and Backends
# =============================================================================


class Processor[T, U](metaclass=ABCMeta):
    """Abstract interface for processing pattern events.

    Processors transform pattern events into transport items (OSC bundles,
    MIDI messages, log lines, and so on).
    """

    @abstractmethod
    def process(
        self, instant: Instant, orbit: Orbit, events: Sequence[PatEvent[T]]
    ) -> List[U]:
        """Process the onsets of a single orbit for one query window.

        Args:
            instant: Timing information for this window
            orbit: The orbit these events belong to
            events: Events to process, sorted by time

        Returns:
            Processed items
        """
        raise NotImplementedError


class LogProcessor[T](Processor[T, str]):
    """Debug processor that converts events to log strings."""

    @override
    def process(
        self, instant: Instant, orbit: Orbit, events: Sequence[PatEvent[T]]
    ) -> List[str]:
        messages = []
        for ev in events:
            span = ev.whole_or_part()
            start_posix = instant.posix_at(span.start)
            stop_posix = instant.posix_at(span.stop)
            messages.append(
                f"Orbit {orbit} Event @{span} [posix: {start_posix:.3f}-{stop_posix:.3f}]: {ev.value!r}"
            )
        return messages


class Backend[U](metaclass=ABCMeta):
    """Sink for processed items."""

    @abstractmethod
    def send(self, items: Sequence[U]) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class LogBackend[U](Backend[U]):
    """Backend that logs every item."""

    def __init__(self, name: str = "cyclepat.log_backend"):
        self._logger = logging.getLogger(name)

    @override
    def send(self, items: Sequence[U]) -> None:
        for item in items:
            self._logger.info("%s", item)


# =============================================================================
# Live System
# =============================================================================


class LiveSystem[T, U]:
    """Plays the patterns of all orbits through a processor and backend.

    The orbit map is replaced wholesale on every change, so a tick running
    concurrently sees either the old map or the new one. Transport state
    (tempo, position, playing) is guarded by the same lock.

    Wall time is derived from an anchor: the cycle at which playback (or the
    latest tempo change) started and the wall time it happened at. This keeps
    event times free of drift from the loop's own scheduling.

    Args:
        processor: Turns orbit events into backend items
        backend: Receives the items of every tick
        timing: Initial timing, defaulting to Timing.initial()
        clock: Source of wall time, injectable for tests
    """

    def __init__(
        self,
        processor: Processor[T, U],
        backend: Backend[U],
        timing: Optional[Timing] = None,
        clock: Clock = now,
    ):
        self._processor = processor
        self._backend = backend
        self._clock = clock
        self._lock = Lock()
        self._orbits: Dict[Orbit, OrbitState[T]] = {}
        self._timing = timing if timing is not None else Timing.initial()
        self._playing = False
        self._cycle = CycleTime(Fraction(0))
        self._anchor_cycle = self._cycle
        self._anchor_posix = PosixTime(0.0)
        self._halt = Event()
        self._thread: Optional[Thread] = None

    # Orbit management

    def _update_orbit(
        self, orbit: Orbit, fn: Callable[[OrbitState[T]], OrbitState[T]]
    ) -> None:
        with self._lock:
            orbits = dict(self._orbits)
            orbits[orbit] = fn(orbits.get(orbit, OrbitState.initial()))
            self._orbits = orbits

    def orbits(self) -> Mapping[Orbit, OrbitState[T]]:
        """A snapshot of the current orbit map."""
        with self._lock:
            return self._orbits

    def set_orbit(self, orbit: Orbit, pattern: Optional[Pattern[T]]) -> None:
        self._update_orbit(orbit, lambda st: replace(st, pattern=pattern))
        logger.debug("Set orbit %s to %s", orbit, pattern)

    def clear_orbit(self, orbit: Orbit) -> None:
        with self._lock:
            self._orbits = {o: st for o, st in self._orbits.items() if o != orbit}
        logger.debug("Cleared orbit %s", orbit)

    def hush(self) -> None:
        """Remove the patterns of all orbits."""
        with self._lock:
            self._orbits = {}
        logger.info("Hushed all orbits")

    def mute(self, orbit: Orbit) -> None:
        self._update_orbit(orbit, lambda st: replace(st, muted=True))

    def unmute(self, orbit: Orbit) -> None:
        self._update_orbit(orbit, lambda st: replace(st, muted=False))

    def solo(self, orbit: Orbit) -> None:
        self._update_orbit(orbit, lambda st: replace(st, solo=True))

    def unsolo(self, orbit: Orbit) -> None:
        self._update_orbit(orbit, lambda st: replace(st, solo=False))

    # Transport

    @property
    def timing(self) -> Timing:
        with self._lock:
            return self._timing

    @property
    def playing(self) -> bool:
        with self._lock:
            return self._playing

    @property
    def cycle(self) -> CycleTime:
        """Start of the next window to be generated."""
        with self._lock:
            return self._cycle

    def _posix_of(self, cycle: CycleTime) -> PosixTime:
        delta = float(cycle - self._anchor_cycle) / float(self._timing.cps)
        return PosixTime(self._anchor_posix + delta)

    def _reanchor(self, posix: PosixTime) -> None:
        self._anchor_cycle = self._cycle
        self._anchor_posix = posix

    def set_cps(self, cps: Cps) -> None:
        """Change tempo without jumping in cycle position.

        Raises:
            ValueError: If the tempo is not positive
        """
        cps = mk_cps(cps)
        with self._lock:
            if self._playing:
                self._reanchor(self._posix_of(self._cycle))
            self._timing = self._timing.set_cps(cps)
        logger.info("Set cps to %s", cps)

    def set_cycle(self, cycle: CycleTime) -> None:
        """Jump to the given cycle position."""
        with self._lock:
            self._cycle = cycle
            self._reanchor(self._clock())
        logger.info("Set cycle to %s", cycle)

    def play(self) -> None:
        with self._lock:
            if not self._playing:
                self._playing = True
                self._reanchor(self._clock())
        logger.info("Playing")

    def pause(self) -> None:
        with self._lock:
            self._playing = False
        logger.info("Paused")

    # Generation

    def tick(self) -> bool:
        """Generate and send one window of events.

        Returns:
            True if a window was generated, False if paused
        """
        with self._lock:
            if not self._playing:
                return False
            orbits = self._orbits
            timing = self._timing
            start = self._cycle
            stop = CycleTime(start + timing.generation_length())
            start_posix = self._posix_of(start)
            self._cycle = stop

        span = TimeSpan(start, stop)
        instant = Instant(
            cycle_time=start,
            cps=timing.cps,
            posix_time=PosixTime(start_posix + timing.latency),
        )
        items: List[U] = []
        for orbit, pattern in audible_orbits(orbits):
            try:
                events = sort_events(pattern.onsets_only().query(span))
                items.extend(self._processor.process(instant, orbit, events))
            except Exception:
                logger.exception("Failed to generate orbit %s over %s", orbit, span)
        logger.debug("Generated %d items over %s", len(items), span)
        if items:
            try:
                self._backend.send(items)
            except Exception:
                logger.exception("Failed to send %d items over %s", len(items), span)
        return True

    def _next_wait(self) -> PosixDelta:
        with self._lock:
            if not self._playing:
                return self._timing.generation_interval()
            target = self._posix_of(self._cycle)
        return PosixDelta(max(0.0, target - self._clock()))

    def _run(self) -> None:
        logger.debug("Live loop starting")
        while not self._halt.is_set():
            self.tick()
            if self._halt.wait(timeout=self._next_wait()):
                break
        logger.debug("Live loop stopping")

    # Lifecycle

    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the loop thread; does nothing if it is already running."""
        if self.running():
            return
        self._halt.clear()
        self._thread = Thread(target=self._run, name="cyclepat-live", daemon=True)
        self._thread.start()
        logger.info("Started live system")

    def stop(self) -> None:
        """Stop the loop thread and wait for it to exit."""
        self._halt.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        logger.info("Stopped live system")

    def close(self) -> None:
        """Stop the loop and close the backend."""
        self.stop()
        self._backend.close()
