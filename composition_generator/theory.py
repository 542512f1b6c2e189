"""Diatonic theory tables and probabilistic chord-type selection.

For a key and mode this module derives the seven scale pitch classes and
exposes, for each scale degree, its harmonic function, triad quality and an
ordered list of three increasingly rich chord structures (triad, seventh,
ninth).  :func:`choose_chord_type` turns that table into a concrete chord
type using independent Bernoulli draws so progressions vary in colour from
run to run.

The tables are keyed by :class:`ScaleDegree`, an enumeration of exactly the
seven valid degrees, and are checked for completeness when the module is
imported.  A missing entry therefore fails loudly at import time instead of
surfacing halfway through a generation run.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Tuple

from .errors import InvalidConfig, MissingDiatonicEntry
from .note_utils import (
    LETTERS,
    NOTE_TO_PC,
    canonical_key,
    display_spelling,
    spell_for_letter,
)

__all__ = [
    "ScaleDegree",
    "DiatonicEntry",
    "MODES",
    "HARMONIC_STYLES",
    "CHORD_INTERVALS",
    "DIATONIC_TABLES",
    "ROMAN_NUMERALS",
    "scale_intervals",
    "scale_pitch_classes",
    "diatonic_scale_spelled",
    "diatonic_entry",
    "roman_numeral",
    "choose_chord_type",
]


class ScaleDegree(IntEnum):
    """The seven positions of a diatonic scale (``1`` is the tonic)."""

    I = 1  # noqa: E741 - roman numeral naming
    II = 2
    III = 3
    IV = 4
    V = 5
    VI = 6
    VII = 7


@dataclass(frozen=True)
class DiatonicEntry:
    """Harmonic description of one scale degree."""

    quality: str
    function: str
    structures: Tuple[str, str, str]

    @property
    def is_minor_quality(self) -> bool:
        """``True`` for minor and diminished degrees."""

        q = self.quality.lower()
        return "minor" in q or "diminished" in q


MODES = ("major", "minor")
HARMONIC_STYLES = ("simple", "complex")

_MAJOR_INTERVALS = (0, 2, 4, 5, 7, 9, 11)
_NATURAL_MINOR_INTERVALS = (0, 2, 3, 5, 7, 8, 10)
_HARMONIC_MINOR_INTERVALS = (0, 2, 3, 5, 7, 8, 11)

# Each recipe lists ``(semitones above the root, letter steps above the root)``
# pairs.  The letter offset drives enharmonic spelling, e.g. the ninth of a
# chord is spelled one letter above the root.
CHORD_INTERVALS: Dict[str, Tuple[Tuple[int, int], ...]] = {
    "Triad (Major)": ((0, 0), (4, 2), (7, 4)),
    "Triad (minor)": ((0, 0), (3, 2), (7, 4)),
    "Triad (Diminished)": ((0, 0), (3, 2), (6, 4)),
    "Triad (Augmented)": ((0, 0), (4, 2), (8, 4)),
    "sus2": ((0, 0), (2, 1), (7, 4)),
    "sus4": ((0, 0), (5, 3), (7, 4)),
    "6": ((0, 0), (4, 2), (7, 4), (9, 5)),
    "m6": ((0, 0), (3, 2), (7, 4), (9, 5)),
    "Major 7": ((0, 0), (4, 2), (7, 4), (11, 6)),
    "minor 7": ((0, 0), (3, 2), (7, 4), (10, 6)),
    "Dominant 7": ((0, 0), (4, 2), (7, 4), (10, 6)),
    "Half-Diminished 7": ((0, 0), (3, 2), (6, 4), (10, 6)),
    "Diminished 7": ((0, 0), (3, 2), (6, 4), (9, 6)),
    "Dominant 7sus4": ((0, 0), (5, 3), (7, 4), (10, 6)),
    "Major 9": ((0, 0), (4, 2), (7, 4), (11, 6), (2, 1)),
    "minor 9": ((0, 0), (3, 2), (7, 4), (10, 6), (2, 1)),
    "Dominant 9": ((0, 0), (4, 2), (7, 4), (10, 6), (2, 1)),
    "add9": ((0, 0), (4, 2), (7, 4), (2, 1)),
    "madd9": ((0, 0), (3, 2), (7, 4), (2, 1)),
    "Half-Diminished 9": ((0, 0), (3, 2), (6, 4), (10, 6), (2, 1)),
    "Major 11": ((0, 0), (4, 2), (7, 4), (11, 6), (2, 1), (5, 3)),
    "minor 11": ((0, 0), (3, 2), (7, 4), (10, 6), (2, 1), (5, 3)),
    "Dominant 11": ((0, 0), (4, 2), (7, 4), (10, 6), (2, 1), (5, 3)),
    "Half-Diminished 11": ((0, 0), (3, 2), (6, 4), (10, 6), (2, 1), (5, 3)),
    "Major 13": ((0, 0), (4, 2), (7, 4), (11, 6), (2, 1), (5, 3), (9, 5)),
    "minor 13": ((0, 0), (3, 2), (7, 4), (10, 6), (2, 1), (5, 3), (9, 5)),
    "Dominant 13": ((0, 0), (4, 2), (7, 4), (10, 6), (2, 1), (5, 3), (9, 5)),
    "Half-Diminished 13": ((0, 0), (3, 2), (6, 4), (10, 6), (2, 1), (5, 3), (9, 5)),
}

_MAJOR = "Triad (Major)", "Major 7", "Major 9"
_MINOR = "Triad (minor)", "minor 7", "minor 9"
_DOMINANT = "Triad (Major)", "Dominant 7", "Dominant 9"
_HALF_DIMINISHED = "Triad (Diminished)", "Half-Diminished 7", "Half-Diminished 9"

DIATONIC_TABLES: Dict[str, Dict[ScaleDegree, DiatonicEntry]] = {
    "major": {
        ScaleDegree.I: DiatonicEntry("Major", "Tonic", _MAJOR),
        ScaleDegree.II: DiatonicEntry("minor", "Subdominant", _MINOR),
        ScaleDegree.III: DiatonicEntry("minor", "Tonic", _MINOR),
        ScaleDegree.IV: DiatonicEntry("Major", "Subdominant", _MAJOR),
        ScaleDegree.V: DiatonicEntry("Major", "Dominant", _DOMINANT),
        ScaleDegree.VI: DiatonicEntry("minor", "Tonic/Subdominant", _MINOR),
        ScaleDegree.VII: DiatonicEntry("Diminished", "Dominant", _HALF_DIMINISHED),
    },
    "minor": {
        ScaleDegree.I: DiatonicEntry("minor", "Tonic", _MINOR),
        ScaleDegree.II: DiatonicEntry("Diminished", "Subdominant", _HALF_DIMINISHED),
        ScaleDegree.III: DiatonicEntry("Major", "Tonic/Mediant", _MAJOR),
        ScaleDegree.IV: DiatonicEntry("minor", "Subdominant", _MINOR),
        ScaleDegree.V: DiatonicEntry("Major", "Dominant", _DOMINANT),
        ScaleDegree.VI: DiatonicEntry("Major", "Subdominant", _MAJOR),
        ScaleDegree.VII: DiatonicEntry("Diminished", "Dominant", _HALF_DIMINISHED),
    },
}

ROMAN_NUMERALS: Dict[str, Tuple[str, ...]] = {
    "major": ("I", "ii", "iii", "IV", "V", "vi", "vii°"),
    "minor": ("i", "ii°", "III", "iv", "V", "VI", "vii°"),
}

# Bernoulli probabilities for the triad, seventh and ninth structures.
_STRUCTURE_PROBABILITIES: Dict[str, Tuple[float, ...]] = {
    "simple": (0.7, 0.3),
    "complex": (0.4, 0.6, 0.5),
}

_SUS_PROBABILITY = 0.2
_ADD9_PROBABILITY = 0.15
_DOMINANT_SUS_PROBABILITY = 0.1
_SIXTH_PROBABILITY = 0.05


def _validate_tables() -> None:
    """Check that every mode defines every degree with known chord types."""

    for mode in MODES:
        table = DIATONIC_TABLES.get(mode)
        if table is None:
            raise MissingDiatonicEntry(f"No diatonic table for mode {mode!r}")
        for degree in ScaleDegree:
            entry = table.get(degree)
            if entry is None:
                raise MissingDiatonicEntry(
                    f"Missing diatonic data for degree {int(degree)} in {mode} mode"
                )
            unknown = [s for s in entry.structures if s not in CHORD_INTERVALS]
            if unknown:
                raise MissingDiatonicEntry(f"Unknown chord structures {unknown} in {mode} table")
        if len(ROMAN_NUMERALS[mode]) != len(ScaleDegree):
            raise MissingDiatonicEntry(f"Roman numerals incomplete for {mode} mode")


_validate_tables()


def _check_mode(mode: str) -> None:
    if mode not in MODES:
        raise InvalidConfig(f"Unknown mode: {mode}")


def scale_intervals(mode: str, harmonic_minor: bool = True) -> Tuple[int, ...]:
    """Return the semitone pattern of ``mode``.

    Minor keys use the harmonic minor scale (raised seventh) unless
    ``harmonic_minor`` is ``False``.
    """

    _check_mode(mode)
    if mode == "major":
        return _MAJOR_INTERVALS
    return _HARMONIC_MINOR_INTERVALS if harmonic_minor else _NATURAL_MINOR_INTERVALS


def scale_pitch_classes(key: str, mode: str, harmonic_minor: bool = True) -> List[int]:
    """Return the seven pitch classes of ``key`` in ``mode``."""

    key_pc = NOTE_TO_PC[canonical_key(key)]
    return [(key_pc + i) % 12 for i in scale_intervals(mode, harmonic_minor)]


def diatonic_scale_spelled(key: str, mode: str, harmonic_minor: bool = True) -> List[str]:
    """Return the display spellings of the scale of ``key``.

    Letters are assigned starting from the key's own letter so each letter
    appears once, e.g. ``F major`` yields ``Bb`` rather than ``A#``.
    """

    key = canonical_key(key)
    start = LETTERS.index(key[0])
    spelled = []
    for i, pc in enumerate(scale_pitch_classes(key, mode, harmonic_minor)):
        raw = spell_for_letter(pc, LETTERS[(start + i) % 7])
        spelled.append(display_spelling(raw, key))
    return spelled


def diatonic_entry(degree: int, mode: str) -> DiatonicEntry:
    """Return the :class:`DiatonicEntry` for ``degree`` in ``mode``.

    Raises
    ------
    MissingDiatonicEntry
        If ``degree`` is not one of the seven scale degrees.
    """

    _check_mode(mode)
    try:
        return DIATONIC_TABLES[mode][ScaleDegree(int(degree))]
    except (ValueError, KeyError) as exc:
        raise MissingDiatonicEntry(
            f"Missing diatonic data for degree {degree} in {mode} mode"
        ) from exc


def roman_numeral(degree: int, mode: str) -> str:
    """Return the roman numeral label of ``degree`` in ``mode``."""

    _check_mode(mode)
    return ROMAN_NUMERALS[mode][ScaleDegree(int(degree)) - 1]


def choose_chord_type(
    degree: int,
    mode: str,
    rng: random.Random,
    style: str = "complex",
) -> str:
    """Pick a chord type for ``degree`` in ``mode``.

    Independent draws decide which of the degree's triad, seventh and ninth
    structures are available (``"simple"`` style never offers the ninth).
    Low-probability draws then add colour chords: ``sus2``/``sus4``,
    ``add9``/``madd9`` and ``6``/``m6`` on every degree but the seventh, and
    ``Dominant 7sus4`` on the dominant only.  One candidate is picked
    uniformly; with nothing available the plain triad is returned.

    Seventh chords on the diminished degree (vii in major, ii in minor) are
    always resolved to ``Half-Diminished 7``.

    Parameters
    ----------
    degree:
        Scale degree ``1-7``.
    mode:
        ``"major"`` or ``"minor"``.
    rng:
        Random source used for every draw.
    style:
        ``"simple"`` or ``"complex"``.

    Returns
    -------
    str
        A key of :data:`CHORD_INTERVALS`.
    """

    if style not in _STRUCTURE_PROBABILITIES:
        raise InvalidConfig(f"Unknown harmonic style: {style}")
    degree = ScaleDegree(int(degree))
    entry = diatonic_entry(degree, mode)

    available: List[str] = []
    for structure, probability in zip(entry.structures, _STRUCTURE_PROBABILITIES[style]):
        if rng.random() < probability:
            available.append(structure)

    if degree != ScaleDegree.VII and rng.random() < _SUS_PROBABILITY:
        available.append(rng.choice(["sus2", "sus4"]))
    if degree != ScaleDegree.VII and rng.random() < _ADD9_PROBABILITY:
        available.append("madd9" if entry.is_minor_quality else "add9")
    if degree == ScaleDegree.V and rng.random() < _DOMINANT_SUS_PROBABILITY:
        available.append("Dominant 7sus4")
    if degree != ScaleDegree.VII and rng.random() < _SIXTH_PROBABILITY:
        available.append("m6" if entry.is_minor_quality else "6")

    if not available:
        return entry.structures[0]
    result = rng.choice(available)

    diminished_degree = (mode == "major" and degree == ScaleDegree.VII) or (
        mode == "minor" and degree == ScaleDegree.II
    )
    if diminished_degree and "7" in result:
        return "Half-Diminished 7"
    return result
