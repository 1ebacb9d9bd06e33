"""Constants for cyclepat."""

from __future__ import annotations

from fractions import Fraction

# Tempo defaults: 135 bpm at 4 beats per cycle
DEFAULT_BPM = 135
DEFAULT_BEATS_PER_CYCLE = 4
DEFAULT_CPS = Fraction(DEFAULT_BPM, 60 * DEFAULT_BEATS_PER_CYCLE)

# Environment variable overriding the default tempo in cycles per second
CPS_ENV_VAR = "CYCLEPAT_CPS"

# Number of query windows per cycle in the live loop
DEFAULT_GENERATIONS_PER_CYCLE = 20

# Seconds added to every scheduled event
DEFAULT_LATENCY = 0.2

# Pan value assumed when a control map has none
DEFAULT_PAN = 0.5

# SuperDirt listens here by default
DEFAULT_DIRT_HOST = "127.0.0.1"
DEFAULT_DIRT_PORT = 57120
DIRT_PLAY_ADDRESS = "/dirt/play"

# MIDI
DEFAULT_VELOCITY = 100
MAX_MIDI_VALUE = 127
MAX_MIDI_CHANNEL = 15
