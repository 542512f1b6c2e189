"""Greedy voice-leading optimisation for chord progressions.

Each chord is offered nine voicings: root position, first and second
inversion, each shifted down an octave, left in place or shifted up an
octave.  The first chord is simply placed near a reference register; every
later chord takes the candidate whose voices move the least from the
previously chosen voicing.  The search is local, so the result is smooth from
chord to chord but not guaranteed to be globally minimal.

Example
-------
>>> voicing_candidates((60, 64, 67))[3]
[52, 55, 60]
>>> voice_distance([60, 64, 67], [59, 65, 67])
2

Design Notes
------------
- Candidate scoring is vectorised with :mod:`numpy`; all candidates of one
  chord are scored against the previous voicing in a single broadcast.
- Chords of different sizes (a triad followed by a seventh chord) are paired
  after padding the smaller voicing with octave doublings of its own pitches.
"""

from __future__ import annotations

from dataclasses import replace
from fractions import Fraction
from typing import List, Sequence

import numpy as np

from .models import BEATS_PER_BAR, ChordSpec, VoicedChord
from .note_utils import midi_to_note

__all__ = [
    "REFERENCE_THRESHOLD",
    "OCTAVE_SHIFTS",
    "BEATS_PER_BAR",
    "rotate",
    "normalize_ascending",
    "voicing_candidates",
    "pad_voicing",
    "voice_distance",
    "initial_voicing",
    "choose_voicing",
    "apply_voice_leading",
    "apply_durations",
]

# Mean pitch below which the opening chord is raised one octave.
REFERENCE_THRESHOLD = 54
OCTAVE_SHIFTS = (-12, 0, 12)
INVERSIONS = 3
# Largest denominator used when recovering exact beat fractions from floats.
MAX_BEAT_DENOMINATOR = 1_000_000


def rotate(pitches: Sequence[int], n: int) -> List[int]:
    """Move the first ``n`` pitches to the end of the list."""

    out = list(pitches)
    if not out:
        return out
    n %= len(out)
    return out[n:] + out[:n]


def normalize_ascending(pitches: Sequence[int]) -> List[int]:
    """Raise pitches by octaves until each lies above its predecessor.

    The list order is kept, so the first pitch stays the lowest voice.
    """

    out = list(pitches)
    for i in range(1, len(out)):
        while out[i] <= out[i - 1]:
            out[i] += 12
    return out


def voicing_candidates(base_pitches: Sequence[int]) -> List[List[int]]:
    """Return the nine inversion/octave candidates for ``base_pitches``.

    Candidates are ordered by inversion (root, first, second) and within each
    inversion by shift (-12, 0, +12).
    """

    candidates = []
    for inversion in range(INVERSIONS):
        ascending = normalize_ascending(rotate(base_pitches, inversion))
        for shift in OCTAVE_SHIFTS:
            candidates.append([m + shift for m in ascending])
    return candidates


def pad_voicing(pitches: Sequence[int], size: int) -> List[int]:
    """Return ``pitches`` sorted and padded to ``size`` voices.

    Missing voices are octave doublings of the existing pitches taken from the
    lowest upward (+12, then +24 on a second pass).
    """

    ordered = sorted(pitches)
    if not ordered:
        return ordered
    padded = list(ordered)
    i = 0
    while len(padded) < size:
        octave = 12 * (i // len(ordered) + 1)
        padded.append(ordered[i % len(ordered)] + octave)
        i += 1
    return sorted(padded)


def voice_distance(previous: Sequence[int], current: Sequence[int]) -> int:
    """Sum of absolute per-voice motion between two voicings.

    Both voicings are sorted and paired element-wise; when their sizes differ
    the smaller one is padded with :func:`pad_voicing` first.
    """

    size = max(len(previous), len(current))
    a = np.asarray(pad_voicing(previous, size))
    b = np.asarray(pad_voicing(current, size))
    return int(np.abs(a - b).sum())


def initial_voicing(base_pitches: Sequence[int]) -> List[int]:
    """Voicing for the opening chord: root position near the reference register."""

    ascending = normalize_ascending(base_pitches)
    if sum(ascending) / len(ascending) < REFERENCE_THRESHOLD:
        return [m + 12 for m in ascending]
    return ascending


def choose_voicing(previous: Sequence[int], base_pitches: Sequence[int]) -> List[int]:
    """Return the candidate of ``base_pitches`` closest to ``previous``.

    Ties keep the earliest candidate in :func:`voicing_candidates` order.
    """

    candidates = voicing_candidates(base_pitches)
    size = max(len(previous), len(base_pitches))
    prev = np.asarray(pad_voicing(previous, size))
    # One row per candidate, one column per paired voice.
    matrix = np.asarray([pad_voicing(c, size) for c in candidates])
    scores = np.abs(matrix - prev).sum(axis=1)
    return candidates[int(np.argmin(scores))]


def apply_voice_leading(
    chords: Sequence[ChordSpec],
    prefer: str = "sharps",
    key: str | None = None,
) -> List[VoicedChord]:
    """Voice every chord of ``chords`` against its predecessor.

    Start beats are laid end to end from the chords' durations so callers
    should assign durations first (see :func:`apply_durations`).  Boundaries
    are accumulated as exact fractions, so chords of 4/3 or 4/7 beats still
    tile the bars without rounding drift and each chord ends exactly where
    the next one starts.
    """

    voiced: List[VoicedChord] = []
    previous: List[int] | None = None
    beat = Fraction(0)
    for chord in chords:
        if previous is None:
            voicing = initial_voicing(chord.base_pitches)
        else:
            voicing = choose_voicing(previous, chord.base_pitches)
        notes = tuple(midi_to_note(m, prefer, key) for m in voicing)
        end = beat + Fraction(chord.duration_beats).limit_denominator(MAX_BEAT_DENOMINATOR)
        voiced.append(VoicedChord(chord, tuple(voicing), notes, float(beat), float(end)))
        beat = end
        previous = voicing
    return voiced


def apply_durations(chords: Sequence[ChordSpec], chords_per_bar: int) -> List[ChordSpec]:
    """Give every chord an equal share of a 4/4 bar."""

    duration = BEATS_PER_BAR / max(1, chords_per_bar)
    return [replace(ch, duration_beats=duration) for ch in chords]
