"""Velocity shaping and humanisation helpers.

``note_velocity`` gives melody notes a metric accent: notes on beats one and
three of a bar sound a little louder than the rest, with a small random
jitter so repeated notes are not identical.

``humanize_events`` lightly randomises the ``time`` and ``velocity`` fields
of MIDI messages so exported files do not sound overly mechanical. The
function mutates the provided messages in place and skips attributes that
are missing.
"""

from __future__ import annotations

import random
from typing import Iterable

__all__ = ["STRONG_VELOCITY", "WEAK_VELOCITY", "note_velocity", "humanize_events"]

STRONG_VELOCITY = 0.85
WEAK_VELOCITY = 0.72
VELOCITY_JITTER = 0.04
MIN_VELOCITY = 0.35
MAX_VELOCITY = 0.95


def note_velocity(beat_in_bar: float, rng: random.Random) -> float:
    """Return a ``0-1`` velocity for a note starting at ``beat_in_bar``."""

    velocity = STRONG_VELOCITY if beat_in_bar in (0, 2) else WEAK_VELOCITY
    velocity += rng.uniform(-VELOCITY_JITTER, VELOCITY_JITTER)
    return max(MIN_VELOCITY, min(MAX_VELOCITY, velocity))


def humanize_events(messages: Iterable, rng: random.Random) -> None:
    """Jitter ``time`` and ``velocity`` fields of ``messages``.

    ``time`` values are shifted by ±15 ticks while ``velocity`` is adjusted by
    ±10 units, staying within the 1–127 MIDI range.
    """

    for msg in messages:
        # Only events with a positive delta time are shifted so simultaneous
        # chord tones stay together.
        if hasattr(msg, "time") and msg.time > 0:
            msg.time = max(0, msg.time + rng.randint(-15, 15))
        if getattr(msg, "type", None) == "note_on" and msg.velocity:
            msg.velocity = max(1, min(127, msg.velocity + rng.randint(-10, 10)))
