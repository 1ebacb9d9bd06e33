"""MIDI transport.

Onset events carrying control maps with a `note` become note_on messages at
the onset and note_off messages at the end of the event. A sender thread
delivers each message to the output port once its wall time arrives.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from threading import Event, Lock, Thread
from typing import Any, List, Optional, Sequence, Tuple, override

import mido
from mido.frozen import FrozenMessage

from cyclepat.combinators import ControlMap
from cyclepat.constants import DEFAULT_VELOCITY, MAX_MIDI_CHANNEL, MAX_MIDI_VALUE
from cyclepat.ev import Event as PatEvent
from cyclepat.live import Backend, Clock, Instant, Orbit, Processor
from cyclepat.time import PosixDelta, PosixTime, now

logger = logging.getLogger(__name__)

_NOTE_OFF_PRIORITY = 0
_DEFAULT_PRIORITY = 1

_DEFAULT_POLL_INTERVAL = PosixDelta(0.001)


@dataclass(frozen=True, order=True)
class TimedMessage:
    """A MIDI message due at a wall time.

    Messages order by time, and at equal times note_off comes first so a
    repeated note is released before it is struck again.
    """

    time: PosixTime
    """Timestamp when the message should be sent (POSIX time)."""

    priority: int
    message: FrozenMessage = field(compare=False)

    @staticmethod
    def mk(time: PosixTime, message: FrozenMessage) -> TimedMessage:
        priority = _NOTE_OFF_PRIORITY if message.type == "note_off" else _DEFAULT_PRIORITY
        return TimedMessage(time, priority, message)


def _midi_int(name: str, value: Any, upper: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        try:
            value = float(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"{name} must be numeric, got {value!r}") from e
    num = int(round(value))
    if not (0 <= num <= upper):
        raise ValueError(f"{name} {num} out of range (0-{upper})")
    return num


def parse_note(
    orbit: Orbit, value: Any, default_velocity: int = DEFAULT_VELOCITY
) -> Tuple[int, int, int]:
    """Read the note, velocity and channel of a control map.

    The velocity comes from `velocity`, else from `gain` scaled by the
    default velocity, else the default velocity; it is clamped to 0-127.
    The channel comes from `channel`, else the orbit number.

    Args:
        orbit: The orbit the event came from
        value: The control map
        default_velocity: Velocity used when the map has neither velocity nor gain

    Returns:
        A tuple of (note, velocity, channel)

    Raises:
        ValueError: If the value is not a map, has no note, or a field is out of range
    """
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected a control map, got {value!r}")
    if "note" not in value:
        raise ValueError(f"No note in {value!r}")
    note = _midi_int("note", value["note"], MAX_MIDI_VALUE)

    if "velocity" in value:
        raw_velocity = float(value["velocity"])
    elif "gain" in value:
        raw_velocity = float(value["gain"]) * default_velocity
    else:
        raw_velocity = float(default_velocity)
    velocity = max(0, min(MAX_MIDI_VALUE, int(round(raw_velocity))))

    raw_channel = value["channel"] if "channel" in value else int(orbit)
    channel = _midi_int("channel", raw_channel, MAX_MIDI_CHANNEL)
    return (note, velocity, channel)


class MidiProcessor(Processor[ControlMap, TimedMessage]):
    """Processor that converts control maps to timed note messages."""

    def __init__(self, default_velocity: int = DEFAULT_VELOCITY):
        self._default_velocity = default_velocity

    @override
    def process(
        self, instant: Instant, orbit: Orbit, events: Sequence[PatEvent[ControlMap]]
    ) -> List[TimedMessage]:
        timed_messages = []
        for ev in events:
            try:
                note, velocity, channel = parse_note(
                    orbit, ev.value, self._default_velocity
                )
            except (TypeError, ValueError) as e:
                logger.warning(
                    "Skipping MIDI event at cycle %s: %s", instant.cycle_time, e
                )
                continue
            span = ev.whole_or_part()
            on_msg = FrozenMessage(
                "note_on", channel=channel, note=note, velocity=velocity
            )
            off_msg = FrozenMessage("note_off", channel=channel, note=note, velocity=0)
            timed_messages.append(TimedMessage.mk(instant.posix_at(span.start), on_msg))
            timed_messages.append(TimedMessage.mk(instant.posix_at(span.stop), off_msg))
        return timed_messages


class MidiBackend(Backend[TimedMessage]):
    """Queues timed messages and sends them to a port when they are due.

    Args:
        output: MIDI output port, closed along with the backend
        clock: Source of wall time
        poll_interval: Seconds between checks for due messages
        autostart: Whether to start the sender thread immediately
    """

    def __init__(
        self,
        output: mido.ports.BaseOutput,
        clock: Clock = now,
        poll_interval: PosixDelta = _DEFAULT_POLL_INTERVAL,
        autostart: bool = True,
    ):
        self._output = output
        self._clock = clock
        self._poll_interval = poll_interval
        self._lock = Lock()
        self._heap: List[TimedMessage] = []
        self._halt = Event()
        self._thread: Optional[Thread] = None
        if autostart:
            self.start()

    @override
    def send(self, items: Sequence[TimedMessage]) -> None:
        with self._lock:
            for item in items:
                heapq.heappush(self._heap, item)

    def pending(self) -> int:
        with self._lock:
            return len(self._heap)

    def send_due(self, current: PosixTime) -> int:
        """Send every queued message due at or before the given time.

        Returns:
            The number of messages sent
        """
        due = []
        with self._lock:
            while self._heap and self._heap[0].time <= current:
                due.append(heapq.heappop(self._heap))
        for timed_msg in due:
            self._output.send(timed_msg.message)
        return len(due)

    def _run(self) -> None:
        logger.debug("MIDI sender started")
        while True:
            try:
                self.send_due(self._clock())
            except Exception:
                logger.exception("Failed to send due MIDI messages")
            if self._halt.wait(timeout=self._poll_interval):
                break
        logger.debug("MIDI sender stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._halt.clear()
        self._thread = Thread(target=self._run, name="cyclepat-midi", daemon=True)
        self._thread.start()

    @override
    def close(self) -> None:
        """Stop the sender, release any pending notes and close the port."""
        self._halt.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        with self._lock:
            pending = [tm for tm in self._heap if tm.message.type == "note_off"]
            self._heap = []
        for timed_msg in sorted(pending):
            self._output.send(timed_msg.message)
        self._output.close()


def open_output(name: Optional[str] = None, virtual: bool = False) -> mido.ports.BaseOutput:
    """Open a MIDI output port by name, or the default port if none is given."""
    return mido.open_output(name, virtual=virtual)
