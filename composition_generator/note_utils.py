"""Pitch-class arithmetic and enharmonic spelling helpers.

This module groups every conversion between numbers and note names used by
the engine.  Pitch classes are plain integers ``0-11`` and absolute pitches
are MIDI note numbers; names are a display concern resolved here so the rest
of the package never has to reason about accidentals.

Example
-------
>>> from composition_generator.note_utils import note_to_midi, spell_for_letter
>>> note_to_midi("C4")
60
>>> spell_for_letter(1, "D")
'Db'
"""

# Modification Summary
# ---------------------
# * ``note_to_midi`` raises ``InvalidPitchName`` (a ``ValueError``) for
#   malformed strings instead of leaking a ``KeyError``.
# * Added required-letter spelling so each seven-note scale uses every letter
#   exactly once, with a sharp-based fallback for unmapped pairs.
# * Display cosmetics (flat-key override, ``##``/``bb`` collapse) are applied
#   only to strings and never feed back into pitch-class arithmetic.

from __future__ import annotations

import logging
import math
import re
from functools import lru_cache
from typing import Dict, List, Optional

from .errors import InvalidPitchName, UnknownKey

__all__ = [
    "NOTE_TO_PC",
    "SHARP_NAMES",
    "FLAT_NAMES",
    "LETTERS",
    "FLAT_KEYS",
    "canonical_key",
    "is_flat_key",
    "parse_pitch_class",
    "pc_to_name",
    "note_to_midi",
    "midi_to_note",
    "spell_for_letter",
    "required_letter",
    "display_spelling",
    "snap_beats",
]

logger = logging.getLogger(__name__)

# ``NOTE_TO_PC`` lists every key name accepted by the engine.  Both sharp and
# flat spellings of the black keys map to the same pitch class.
NOTE_TO_PC: Dict[str, int] = {
    "C": 0,
    "C#": 1,
    "Db": 1,
    "D": 2,
    "D#": 3,
    "Eb": 3,
    "E": 4,
    "F": 5,
    "F#": 6,
    "Gb": 6,
    "G": 7,
    "G#": 8,
    "Ab": 8,
    "A": 9,
    "A#": 10,
    "Bb": 10,
    "B": 11,
}

SHARP_NAMES: List[str] = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
FLAT_NAMES: List[str] = ["C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B"]

LETTERS: List[str] = ["C", "D", "E", "F", "G", "A", "B"]

# Natural pitch class of each letter, used when parsing spellings such as
# ``B#`` or ``Dbb`` that are not part of ``NOTE_TO_PC``.
_LETTER_PC: Dict[str, int] = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}
_ACCIDENTAL_OFFSETS: Dict[str, int] = {"#": 1, "b": -1, "x": 2}

# Keys conventionally notated with flats.  Their accidentals are rendered as
# flats whatever the global preference says.
FLAT_KEYS = frozenset({"F", "Db", "Eb", "Gb", "Ab", "Bb"})

# Spelling of a pitch class under a required scale letter.  Pairs that are not
# listed fall back to the plain sharp name.
_SPELLING_MAP: Dict[int, Dict[str, str]] = {
    0: {"C": "C", "B": "B#", "D": "Dbb"},
    1: {"C": "C#", "D": "Db"},
    2: {"D": "D", "C": "C##", "E": "Ebb"},
    3: {"D": "D#", "E": "Eb", "F": "Fbb"},
    4: {"E": "E", "F": "Fb"},
    5: {"F": "F", "E": "E#", "G": "Gbb"},
    6: {"F": "F#", "G": "Gb"},
    7: {"G": "G", "F": "F##", "A": "Abb"},
    8: {"G": "G#", "A": "Ab"},
    9: {"A": "A", "G": "G##", "B": "Bbb"},
    10: {"A": "A#", "B": "Bb", "C": "Cbb"},
    11: {"B": "B", "C": "Cb"},
}

_SHARP_TO_FLAT: Dict[str, str] = {"C#": "Db", "D#": "Eb", "F#": "Gb", "G#": "Ab", "A#": "Bb"}

_CANONICAL_KEYS: Dict[str, str] = {name.lower(): name for name in NOTE_TO_PC}


@lru_cache(maxsize=None)
def canonical_key(name: str) -> str:
    """Return the canonical spelling of key ``name``.

    Lookup is case-insensitive so ``"db"`` and ``"DB"`` both resolve to
    ``"Db"``.

    Raises
    ------
    UnknownKey
        If ``name`` is not a key in :data:`NOTE_TO_PC`.
    """

    key = _CANONICAL_KEYS.get(str(name).strip().lower())
    if key is None:
        raise UnknownKey(f"Unknown key: {name}")
    return key


def is_flat_key(key: str) -> bool:
    """Return ``True`` when ``key`` is conventionally notated in flats."""

    return key in FLAT_KEYS


def parse_pitch_class(name: str) -> int:
    """Return the pitch class of a spelled note name such as ``"C##"``.

    Any letter ``A-G`` followed by ``#``, ``b`` or ``x`` accidentals is
    accepted, which covers every spelling produced by
    :func:`spell_for_letter`.
    """

    match = re.fullmatch(r"([A-G])([#bx]*)", name.strip())
    if not match:
        raise InvalidPitchName(f"Invalid pitch class: {name}")
    letter, accidentals = match.groups()
    offset = sum(_ACCIDENTAL_OFFSETS[ch] for ch in accidentals)
    return (_LETTER_PC[letter] + offset) % 12


def pc_to_name(pc: int, prefer: str = "sharps") -> str:
    """Return the display name of pitch class ``pc``.

    ``prefer`` selects ``"sharps"`` or ``"flats"``.  Values outside ``0-11``
    wrap around the octave.
    """

    names = FLAT_NAMES if prefer == "flats" else SHARP_NAMES
    return names[pc % 12]


@lru_cache(maxsize=None)
def note_to_midi(note: str) -> int:
    """Convert a note string such as ``C#4`` into a MIDI number.

    The octave follows scientific pitch notation so ``C4`` is ``60`` and
    ``C-1`` is ``0``.

    Raises
    ------
    InvalidPitchName
        If ``note`` is not a letter, optional single accidental and a signed
        integer octave.
    """

    match = re.fullmatch(r"([A-G](?:#|b)?)(-?\d+)", note)
    if not match:
        logger.error("Invalid note format: %s", note)
        raise InvalidPitchName(f"Invalid pitch: {note}")

    name, octave_str = match.groups()
    pc = NOTE_TO_PC.get(name)
    if pc is None:
        raise InvalidPitchName(f"Invalid note name: {name}")
    # MIDI octaves are offset by one relative to scientific pitch notation.
    return pc + (int(octave_str) + 1) * 12


def midi_to_note(midi: int, prefer: str = "sharps", key: Optional[str] = None) -> str:
    """Return ``midi`` as a note name with octave, e.g. ``61 -> "C#4"``.

    When ``key`` is a flat key the name is rendered with flats regardless of
    ``prefer``.
    """

    if key is not None and is_flat_key(key):
        prefer = "flats"
    octave = midi // 12 - 1
    return f"{pc_to_name(midi % 12, prefer)}{octave}"


def required_letter(root_spelled: str, degree_offset: int) -> str:
    """Return the letter ``degree_offset`` steps above the letter of ``root_spelled``."""

    root_idx = LETTERS.index(root_spelled[0])
    return LETTERS[(root_idx + degree_offset) % 7]


def spell_for_letter(pc: int, letter: str) -> str:
    """Spell pitch class ``pc`` using scale letter ``letter``.

    Returns the accidental-marked spelling from the required-letter table
    (``1`` under ``"C"`` is ``"C#"``, under ``"D"`` it is ``"Db"``).  When no
    mapping exists for the pair the plain sharp name is returned.  The result
    is the raw spelling; use :func:`display_spelling` for presentation.
    """

    spelled = _SPELLING_MAP.get(pc % 12, {}).get(letter)
    if spelled is None:
        return pc_to_name(pc, "sharps")
    return spelled


def display_spelling(spelled: str, key: Optional[str] = None) -> str:
    """Apply display cosmetics to a raw spelling.

    In flat keys a single-sharp spelling is rewritten to its flat equivalent.
    Double accidentals are then collapsed to single symbols (``##`` -> ``x``,
    ``bb`` -> ``b``).  The result is for display only.
    """

    if key is not None and is_flat_key(key):
        spelled = _SHARP_TO_FLAT.get(spelled, spelled)
    return spelled.replace("##", "x").replace("bb", "b")


def snap_beats(value: float, step: float = 0.25) -> float:
    """Round ``value`` to the nearest multiple of ``step`` (halves round up)."""

    return math.floor(value / step + 0.5) * step
