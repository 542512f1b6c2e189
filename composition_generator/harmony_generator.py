"""Rule-based chord progression generator and chord builder.

This module walks a small directed graph of legal scale-degree successions to
produce a sequence of numerals and turns each numeral into a concrete chord:
root pitch class, interval stack, roman-numeral label and letter-correct
spelling of every tone.

Example
-------
>>> import random
>>> rng = random.Random(3)
>>> numerals = generate_numerals(4, rng)
>>> numerals[-1] in {"1", "6"}
True
>>> chord = build_chord("C", "major", 5, 3, "sharps", rng)
>>> chord.roman
'V'
"""

# The final step of every walk is a cadence: dominant degrees resolve to the
# tonic (or to vi when ``deceptive_cadence`` is set) and any other degree is
# forced onto 1 or 6.

from __future__ import annotations

import logging
import random
from typing import Dict, List, Tuple

from .errors import MissingDiatonicEntry
from .models import ChordSpec
from .note_utils import (
    NOTE_TO_PC,
    canonical_key,
    display_spelling,
    midi_to_note,
    required_letter,
    spell_for_letter,
)
from .theory import (
    CHORD_INTERVALS,
    choose_chord_type,
    diatonic_entry,
    diatonic_scale_spelled,
    roman_numeral,
    scale_intervals,
)

__all__ = [
    "PROGRESSION_RULES",
    "TONIC_STARTS",
    "generate_numerals",
    "chord_notes_spelled",
    "build_chord",
]

logger = logging.getLogger(__name__)

# Legal successors of each scale degree.
PROGRESSION_RULES: Dict[str, Tuple[str, ...]] = {
    "1": ("4", "5", "6", "2", "3"),
    "2": ("5", "7", "4"),
    "3": ("6", "4", "2"),
    "4": ("5", "7", "2", "6", "1"),
    "5": ("1", "6", "4"),
    "6": ("2", "4", "5"),
    "7": ("1", "6", "5"),
}

TONIC_STARTS: Tuple[str, ...] = ("1", "3", "6")
_DOMINANT_DEGREES = ("5", "7")
_RESOLUTIONS = ("1", "6")


def generate_numerals(
    length: int,
    rng: random.Random,
    deceptive_cadence: bool = False,
) -> List[str]:
    """Return ``length`` scale-degree numerals from a random walk.

    The walk starts on a tonic-family degree (1, 3 or 6) and draws each
    successor uniformly from :data:`PROGRESSION_RULES`, redrawing among the
    other successors when the draw would repeat the current degree.  The last
    step is constrained to a cadence.

    Parameters
    ----------
    length:
        Number of numerals. Must be positive.
    rng:
        Random source.
    deceptive_cadence:
        Resolve a final dominant to ``"6"`` instead of ``"1"``.

    Raises
    ------
    ValueError
        If ``length`` is not positive.
    """

    if length <= 0:
        raise ValueError("length must be positive")

    current = rng.choice(TONIC_STARTS)
    out = [current]
    while len(out) < length:
        possible = PROGRESSION_RULES.get(current, ("1",))
        nxt = rng.choice(possible)
        if nxt == current:
            others = [n for n in possible if n != current]
            if others:
                nxt = rng.choice(others)

        if len(out) == length - 1:
            if current in _DOMINANT_DEGREES:
                nxt = "6" if deceptive_cadence else "1"
            elif nxt not in _RESOLUTIONS:
                nxt = rng.choice(_RESOLUTIONS)

        current = nxt
        out.append(current)

    logger.debug("Generated numerals %s", out)
    return out


def chord_notes_spelled(
    key: str,
    mode: str,
    degree: int,
    chord_type: str,
    harmonic_minor: bool = True,
) -> Tuple[str, Tuple[str, ...], Tuple[int, ...], int]:
    """Spell the tones of ``chord_type`` built on ``degree`` of ``key``.

    Returns
    -------
    tuple
        ``(spelled_root, spelled_tones, pitch_classes, root_pc)``.  Each tone
        is spelled with the letter its recipe step requires so thirds,
        fifths and sevenths stay on the correct letters.
    """

    key = canonical_key(key)
    scale = diatonic_scale_spelled(key, mode, harmonic_minor)
    idx = int(degree) - 1
    root_spelled = scale[idx]
    root_pc = (NOTE_TO_PC[key] + scale_intervals(mode, harmonic_minor)[idx]) % 12

    tones: List[str] = []
    pcs: List[int] = []
    for semitones, letter_steps in CHORD_INTERVALS[chord_type]:
        pc = (root_pc + semitones) % 12
        raw = spell_for_letter(pc, required_letter(root_spelled, letter_steps))
        tones.append(display_spelling(raw, key))
        pcs.append(pc)
    return root_spelled, tuple(tones), tuple(pcs), root_pc


def build_chord(
    key: str,
    mode: str,
    degree: int,
    octave: int,
    prefer: str,
    rng: random.Random,
    style: str = "complex",
    harmonic_minor: bool = True,
) -> ChordSpec:
    """Build the chord on scale ``degree`` (``1-7``) of ``key``.

    A chord type is drawn with :func:`choose_chord_type`, then each recipe
    interval is added to the root anchored at ``octave`` (``C4`` = MIDI 60).
    A degree missing from the diatonic table falls back to the tonic so a
    single bad lookup cannot abort a whole progression.
    """

    try:
        diatonic_entry(degree, mode)
    except MissingDiatonicEntry:
        logger.error("Missing diatonic data for degree %s in %s mode; using 1", degree, mode)
        degree = 1
    degree = int(degree)

    entry = diatonic_entry(degree, mode)
    chord_type = choose_chord_type(degree, mode, rng, style)
    spelled_root, tones, _pcs, root_pc = chord_notes_spelled(
        key, mode, degree, chord_type, harmonic_minor
    )
    root_midi = root_pc + (octave + 1) * 12
    base = tuple(root_midi + semitones for semitones, _ in CHORD_INTERVALS[chord_type])

    return ChordSpec(
        numeral=str(degree),
        roman=roman_numeral(degree, mode),
        quality=entry.quality,
        chord_type=chord_type,
        degree=degree,
        root_pc=root_pc,
        root=midi_to_note(root_midi, prefer, canonical_key(key)),
        base_pitches=base,
        spelled_root=spelled_root,
        spelled_tones=tones,
    )
