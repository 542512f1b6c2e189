"""Motif capture, replay and the per-run melody session.

A motif is the opening gesture of the first freely generated phrase: the
phrase-local start offsets of its first few pitched notes and the intervals
between them.  Later phrases may replay it from a new starting pitch, which
transposes the gesture while keeping its contour.

:class:`MelodySession` holds everything that must survive from one phrase to
the next during a single generation run (the captured motif, the previous
pitch and duration, and the random source).  A new session is created for
every run, so nothing leaks between compositions.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

__all__ = [
    "MOTIF_MIN_NOTES",
    "MOTIF_MAX_NOTES",
    "Motif",
    "capture_motif",
    "clamp_step",
    "realize_motif",
    "MelodySession",
]

MOTIF_MIN_NOTES = 3
MOTIF_MAX_NOTES = 8


@dataclass(frozen=True)
class Motif:
    """Start offsets (beats into the phrase) and successive pitch deltas."""

    offsets: Tuple[float, ...]
    deltas: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.offsets)


def capture_motif(notes: Sequence[Tuple[float, int]]) -> Optional[Motif]:
    """Build a :class:`Motif` from ``(offset, midi)`` pairs of pitched notes.

    Only the first :data:`MOTIF_MAX_NOTES` notes are used.  Fewer than
    :data:`MOTIF_MIN_NOTES` notes is not enough of a gesture and yields
    ``None``.
    """

    if len(notes) < MOTIF_MIN_NOTES:
        return None
    head = list(notes[:MOTIF_MAX_NOTES])
    offsets = tuple(offset for offset, _ in head)
    deltas = tuple(b[1] - a[1] for a, b in zip(head, head[1:]))
    return Motif(offsets, deltas)


def clamp_step(step: int, max_leap: int) -> int:
    """Limit the magnitude of ``step`` to ``max_leap`` keeping its direction."""

    if abs(step) > max_leap:
        return max_leap if step > 0 else -max_leap
    return step


def realize_motif(motif: Motif, phrase_beats: float, start_midi: int, max_leap: int) -> List[int]:
    """Return the pitches of ``motif`` replayed from ``start_midi``.

    Slots whose offset falls at or beyond ``phrase_beats`` are dropped, and
    every delta is clamped to ``max_leap`` semitones.
    """

    pitches: List[int] = []
    midi = start_midi
    for i, offset in enumerate(motif.offsets):
        if offset >= phrase_beats:
            break
        if i > 0:
            midi += clamp_step(motif.deltas[i - 1], max_leap)
        pitches.append(midi)
    return pitches


@dataclass
class MelodySession:
    """Mutable state threaded through the phrases of one generation run."""

    rng: random.Random
    motif: Optional[Motif] = None
    prev_midi: Optional[int] = None
    last_duration: Optional[float] = None

    def maybe_capture(self, notes: Sequence[Tuple[float, int]]) -> bool:
        """Capture a motif from ``notes`` unless one already exists."""

        if self.motif is not None:
            return False
        self.motif = capture_motif(notes)
        return self.motif is not None
