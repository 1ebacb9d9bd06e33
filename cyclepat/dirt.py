"""SuperDirt transport.

Onset events carrying control maps become `/dirt/play` OSC messages, each
wrapped in a bundle timetagged with the wall time the event should sound.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, List, Optional, Protocol, Sequence, Tuple, override

import pythonosc.osc_bundle
import pythonosc.osc_bundle_builder
import pythonosc.osc_message_builder
import pythonosc.udp_client

from cyclepat.combinators import ControlMap
from cyclepat.constants import DEFAULT_DIRT_HOST, DEFAULT_DIRT_PORT, DIRT_PLAY_ADDRESS
from cyclepat.ev import Event
from cyclepat.live import Backend, Instant, Orbit, Processor
from cyclepat.time import PosixTime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirtConfig:
    """Where to find SuperDirt."""

    host: str
    port: int
    address: str

    @staticmethod
    def initial(host: Optional[str] = None, port: Optional[int] = None) -> DirtConfig:
        return DirtConfig(
            host=host if host is not None else DEFAULT_DIRT_HOST,
            port=port if port is not None else DEFAULT_DIRT_PORT,
            address=DIRT_PLAY_ADDRESS,
        )


@dataclass(frozen=True)
class DirtMessage:
    """A SuperDirt play message due at a wall time."""

    timestamp: PosixTime
    params: Tuple[Tuple[str, Any], ...]

    def args(self) -> List[Any]:
        """Flatten the parameters into alternating names and values."""
        return [item for pair in self.params for item in pair]


def osc_value(value: Any) -> Any:
    """Convert a control value into something OSC can carry."""
    if isinstance(value, bool):
        return int(value)
    elif isinstance(value, Fraction):
        return float(value)
    elif isinstance(value, (int, float, str)):
        return value
    else:
        return str(value)


class DirtProcessor(Processor[ControlMap, DirtMessage]):
    """Turns control map events into SuperDirt play messages.

    Every message carries the control map followed by `cps`, `cycle` (the
    whole's start) and `delta` (the whole's duration in seconds). The orbit
    is added as `orbit` unless the map already names one.
    """

    @override
    def process(
        self, instant: Instant, orbit: Orbit, events: Sequence[Event[ControlMap]]
    ) -> List[DirtMessage]:
        messages = []
        for ev in events:
            if ev.whole is None or not isinstance(ev.value, Mapping):
                logger.warning(
                    "Skipping event at cycle %s: not a discrete control map: %s",
                    instant.cycle_time,
                    ev,
                )
                continue
            params = [(str(k), osc_value(v)) for k, v in ev.value.items()]
            if "orbit" not in ev.value:
                params.append(("orbit", int(orbit)))
            params.append(("cps", float(instant.cps)))
            params.append(("cycle", float(ev.whole.start)))
            params.append(("delta", float(ev.whole.length() / instant.cps)))
            messages.append(
                DirtMessage(instant.posix_at(ev.whole.start), tuple(params))
            )
        return messages


def build_bundle(
    message: DirtMessage, address: str = DIRT_PLAY_ADDRESS
) -> pythonosc.osc_bundle.OscBundle:
    """Encode a message as a timetagged OSC bundle."""
    msg_builder = pythonosc.osc_message_builder.OscMessageBuilder(address=address)
    for arg in message.args():
        msg_builder.add_arg(arg)
    bundle_builder = pythonosc.osc_bundle_builder.OscBundleBuilder(message.timestamp)
    bundle_builder.add_content(msg_builder.build())
    return bundle_builder.build()


class OscClient(Protocol):
    def send(self, content: pythonosc.osc_bundle.OscBundle) -> None: ...


class DirtBackend(Backend[DirtMessage]):
    """Sends play messages to SuperDirt over UDP.

    Args:
        config: Target host, port and address
        client: Client to send with, by default a UDP client for the config
    """

    def __init__(
        self, config: Optional[DirtConfig] = None, client: Optional[OscClient] = None
    ):
        self._config = config if config is not None else DirtConfig.initial()
        if client is None:
            client = pythonosc.udp_client.SimpleUDPClient(
                self._config.host, self._config.port
            )
        self._client = client

    @override
    def send(self, items: Sequence[DirtMessage]) -> None:
        for message in items:
            try:
                self._client.send(build_bundle(message, self._config.address))
            except (
                OSError,
                ValueError,
                pythonosc.osc_message_builder.BuildError,
                pythonosc.osc_bundle_builder.BuildError,
            ) as e:
                logger.warning("Failed to send %s: %s", message, e)
