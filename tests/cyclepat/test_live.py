"""Tests for the live playback system."""

import logging
import time
from fractions import Fraction
from typing import Any, List, Sequence

import pytest

from cyclepat.ev import Event
from cyclepat.live import (
    Backend,
    Instant,
    LiveSystem,
    LogBackend,
    LogProcessor,
    Orbit,
    OrbitState,
    Processor,
    Timing,
    audible_orbits,
)
from cyclepat.pat import Pattern
from cyclepat.time import Bpc, Cps, CycleTime, PosixDelta, PosixTime


class RecordingBackend(Backend[Any]):
    def __init__(self) -> None:
        self.batches: List[List[Any]] = []
        self.closed = False

    def send(self, items: Sequence[Any]) -> None:
        self.batches.append(list(items))

    def close(self) -> None:
        self.closed = True

    def items(self) -> List[Any]:
        return [item for batch in self.batches for item in batch]


class ValueProcessor(Processor[Any, Any]):
    """Records (orbit, value, posix time of onset) for every event."""

    def process(
        self, instant: Instant, orbit: Orbit, events: Sequence[Event[Any]]
    ) -> List[Any]:
        out = []
        for ev in events:
            assert ev.whole is not None
            out.append((orbit, ev.value, instant.posix_at(ev.whole.start)))
        return out


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.value = start

    def __call__(self) -> PosixTime:
        return PosixTime(self.value)


def _timing(gpc: int = 4) -> Timing:
    return Timing.initial(
        cps=Cps(Fraction(1)),
        generations_per_cycle=gpc,
        latency=PosixDelta(0.5),
    )


def _system(
    gpc: int = 4,
) -> tuple[LiveSystem[Any, Any], RecordingBackend, FakeClock]:
    backend = RecordingBackend()
    clock = FakeClock()
    system: LiveSystem[Any, Any] = LiveSystem(
        ValueProcessor(), backend, timing=_timing(gpc), clock=clock
    )
    return system, backend, clock


def _run_cycle(system: LiveSystem[Any, Any], ticks: int = 4) -> None:
    for _ in range(ticks):
        assert system.tick()


def test_timing_initial_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CYCLEPAT_CPS", raising=False)
    timing = Timing.initial()
    assert timing.cps == Fraction(135, 240)
    assert timing.beats_per_cycle == Bpc(4)
    assert timing.generations_per_cycle == 20
    assert timing.latency == pytest.approx(0.2)


def test_timing_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CYCLEPAT_CPS", "3/4")
    assert Timing.initial().cps == Fraction(3, 4)
    assert Timing.initial(cps=Cps(Fraction(1, 2))).cps == Fraction(1, 2)
    monkeypatch.setenv("CYCLEPAT_CPS", "-1")
    with pytest.raises(ValueError):
        Timing.initial()


def test_timing_generation() -> None:
    timing = _timing(gpc=8).set_cps(Cps(Fraction(2)))
    assert timing.generation_length() == Fraction(1, 8)
    assert timing.generation_interval() == pytest.approx(1 / 16)


def test_instant_posix_at() -> None:
    instant = Instant(
        cycle_time=CycleTime(Fraction(2)),
        cps=Cps(Fraction(1, 2)),
        posix_time=PosixTime(10.0),
    )
    assert instant.posix_at(CycleTime(Fraction(3))) == pytest.approx(12.0)
    assert instant.posix_at(CycleTime(Fraction(3, 2))) == pytest.approx(9.0)


def test_audible_orbits_mute_and_solo() -> None:
    a = Pattern.pure("a")
    b = Pattern.pure("b")
    orbits = {
        Orbit(1): OrbitState(pattern=b, muted=False, solo=False),
        Orbit(0): OrbitState(pattern=a, muted=False, solo=False),
        Orbit(2): OrbitState(pattern=None, muted=False, solo=False),
    }
    assert audible_orbits(orbits) == [(Orbit(0), a), (Orbit(1), b)]

    orbits[Orbit(0)] = OrbitState(pattern=a, muted=True, solo=False)
    assert audible_orbits(orbits) == [(Orbit(1), b)]

    orbits[Orbit(0)] = OrbitState(pattern=a, muted=False, solo=True)
    assert audible_orbits(orbits) == [(Orbit(0), a)]


def test_tick_paused() -> None:
    system, backend, _ = _system()
    system.set_orbit(Orbit(0), Pattern.pure("x"))
    assert not system.tick()
    assert backend.batches == []
    assert system.cycle == 0


def test_tick_generates_onsets() -> None:
    """Test a cycle of ticks sends each onset once with its wall time."""
    system, backend, _ = _system()
    system.set_orbit(Orbit(0), Pattern.fastcat(["a", "b"]))
    system.play()
    _run_cycle(system)

    assert backend.items() == [
        (Orbit(0), "a", pytest.approx(100.5)),
        (Orbit(0), "b", pytest.approx(101.0)),
    ]
    # Windows without onsets send nothing
    assert len(backend.batches) == 2
    assert system.cycle == 1


def test_tick_multiple_orbits() -> None:
    system, backend, _ = _system(gpc=1)
    system.set_orbit(Orbit(1), Pattern.pure("b"))
    system.set_orbit(Orbit(0), Pattern.pure("a"))
    system.play()
    assert system.tick()
    assert [(o, v) for (o, v, _) in backend.items()] == [(Orbit(0), "a"), (Orbit(1), "b")]


def test_mute_solo_clear() -> None:
    system, backend, _ = _system(gpc=1)
    system.set_orbit(Orbit(0), Pattern.pure("a"))
    system.set_orbit(Orbit(1), Pattern.pure("b"))
    system.play()

    system.mute(Orbit(0))
    system.tick()
    assert [v for (_, v, _) in backend.batches[-1]] == ["b"]

    system.unmute(Orbit(0))
    system.solo(Orbit(0))
    system.tick()
    assert [v for (_, v, _) in backend.batches[-1]] == ["a"]

    system.unsolo(Orbit(0))
    system.clear_orbit(Orbit(1))
    system.tick()
    assert [v for (_, v, _) in backend.batches[-1]] == ["a"]

    system.hush()
    count = len(backend.batches)
    system.tick()
    assert len(backend.batches) == count
    assert system.orbits() == {}


def test_orbit_map_is_replaced() -> None:
    """Test snapshots of the orbit map are not mutated by later changes."""
    system, _, _ = _system()
    system.set_orbit(Orbit(0), Pattern.pure("a"))
    snapshot = system.orbits()
    system.set_orbit(Orbit(1), Pattern.pure("b"))
    system.mute(Orbit(0))
    assert list(snapshot) == [Orbit(0)]
    assert not snapshot[Orbit(0)].muted
    assert system.orbits()[Orbit(0)].muted


def test_failing_orbit_is_skipped(caplog: pytest.LogCaptureFixture) -> None:
    """Test one failing pattern does not stop the others."""

    def explode(_: Any) -> Any:
        raise RuntimeError("boom")

    system, backend, _ = _system(gpc=1)
    system.set_orbit(Orbit(0), Pattern.pure("a").fmap(explode))
    system.set_orbit(Orbit(1), Pattern.pure("b"))
    system.play()
    with caplog.at_level(logging.ERROR, logger="cyclepat.live"):
        assert system.tick()
    assert [v for (_, v, _) in backend.items()] == ["b"]
    assert any("orbit 0" in record.getMessage() for record in caplog.records)


class FailingBackend(RecordingBackend):
    def send(self, items: Sequence[Any]) -> None:
        super().send(items)
        raise OSError("port gone")


def test_failing_backend_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    """Test a backend failure is logged and the next tick still runs."""
    backend = FailingBackend()
    system: LiveSystem[Any, Any] = LiveSystem(
        ValueProcessor(), backend, timing=_timing(gpc=1), clock=FakeClock()
    )
    system.set_orbit(Orbit(0), Pattern.pure("a"))
    system.play()
    with caplog.at_level(logging.ERROR, logger="cyclepat.live"):
        assert system.tick()
        assert system.tick()
    assert len(backend.batches) == 2
    assert any("Failed to send" in r.getMessage() for r in caplog.records)


def test_set_cps_keeps_position() -> None:
    """Test tempo changes apply from the current cycle onwards."""
    system, backend, _ = _system(gpc=1)
    system.set_orbit(Orbit(0), Pattern.pure("x"))
    system.play()
    system.tick()
    system.set_cps(Cps(Fraction(2)))
    system.tick()
    system.tick()
    times = [t for (_, _, t) in backend.items()]
    assert times == [
        pytest.approx(100.5),
        pytest.approx(101.5),
        pytest.approx(102.0),
    ]
    with pytest.raises(ValueError):
        system.set_cps(Cps(Fraction(0)))


def test_set_cycle() -> None:
    system, backend, clock = _system(gpc=1)
    system.set_orbit(Orbit(0), Pattern.slowcat(["a", "b", "c"]))
    system.play()
    clock.value = 200.0
    system.set_cycle(CycleTime(Fraction(2)))
    system.tick()
    assert backend.items() == [(Orbit(0), "c", pytest.approx(200.5))]


def test_pause_and_resume() -> None:
    system, backend, clock = _system(gpc=1)
    system.set_orbit(Orbit(0), Pattern.slowcat(["a", "b"]))
    system.play()
    system.tick()
    system.pause()
    assert not system.playing
    assert not system.tick()
    clock.value = 300.0
    system.play()
    system.tick()
    assert backend.items()[-1] == (Orbit(0), "b", pytest.approx(300.5))


def test_log_processor_and_backend(caplog: pytest.LogCaptureFixture) -> None:
    backend: LogBackend[str] = LogBackend()
    system: LiveSystem[Any, str] = LiveSystem(
        LogProcessor(), backend, timing=_timing(gpc=1), clock=FakeClock()
    )
    system.set_orbit(Orbit(3), Pattern.pure("hello"))
    system.play()
    with caplog.at_level(logging.INFO, logger="cyclepat.log_backend"):
        system.tick()
    messages = [r.getMessage() for r in caplog.records if r.name == "cyclepat.log_backend"]
    assert len(messages) == 1
    assert messages[0].startswith("Orbit 3 Event @TimeSpan(0, 1)")
    assert "'hello'" in messages[0]


def test_start_stop() -> None:
    """Test the loop thread runs ticks and halts on stop."""
    backend = RecordingBackend()
    system: LiveSystem[Any, Any] = LiveSystem(
        ValueProcessor(),
        backend,
        timing=Timing.initial(
            cps=Cps(Fraction(10)), generations_per_cycle=2, latency=PosixDelta(0.0)
        ),
    )
    system.set_orbit(Orbit(0), Pattern.pure("x"))
    system.play()
    system.start()
    assert system.running()
    deadline = time.time() + 5.0
    while not backend.batches and time.time() < deadline:
        time.sleep(0.01)
    system.close()
    assert not system.running()
    assert backend.batches
    assert backend.closed


def test_stop_without_start() -> None:
    system, _, _ = _system()
    system.stop()
    assert not system.running()
