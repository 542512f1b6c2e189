"""Composition Generator library.

This package procedurally writes short pieces: a diatonic chord progression
with smooth voice leading and a phrase-structured melody over it.  A typical
workflow is to call :func:`generate_composition` with a configuration, then
serialise the result with :meth:`Composition.to_json` or render it with
:func:`create_midi_file`.

Underlying Algorithm
--------------------
Harmony comes from a random walk over a graph of legal scale-degree
successions that always ends on a cadence.  The numerals are mapped onto the
requested number of chord slots, each numeral is turned into a chord whose
type (triad, seventh, ninth or a colour chord) is drawn per degree, and every
chord is voiced as the inversion and register closest to its predecessor.

The melody is written phrase by phrase.  Free phrases walk a quarter-beat
grid, gating notes by density, drawing durations from a rhythm style and
choosing chord or scale tones near the previous pitch.  The opening gesture
of the first free phrase becomes a motif that later phrases may replay from
a new starting pitch.  Each phrase ends with a cadence that pulls its last
note toward the sounding chord.

Algorithm Pseudocode
--------------------
::

    numerals = random_walk(progression_length)
    chords = voice_lead([build_chord(n) for n in map_to_slots(numerals)])
    for phrase in phrases(chords):
        notes = replay(motif) if reuse else free_phrase()
        shape_cadence(notes[-1])

Every call creates its own random generator (or uses the one passed in), so
generation is reproducible from a seed and independent across calls.
"""

__version__ = "0.1.0"

from .composer import build_progression, generate_composition
from .config import GenerationConfig, load_settings, save_settings
from .errors import (
    CompositionError,
    InvalidConfig,
    InvalidPitchName,
    MissingDiatonicEntry,
    UnknownKey,
)
from .midi_io import beats_to_seconds, build_midi_file, create_midi_file
from .models import ChordSpec, Composition, Note, Progression, VoicedChord
from .note_utils import canonical_key, midi_to_note, note_to_midi

__all__ = [
    "__version__",
    "generate_composition",
    "build_progression",
    "GenerationConfig",
    "load_settings",
    "save_settings",
    "CompositionError",
    "InvalidConfig",
    "InvalidPitchName",
    "MissingDiatonicEntry",
    "UnknownKey",
    "create_midi_file",
    "build_midi_file",
    "beats_to_seconds",
    "ChordSpec",
    "VoicedChord",
    "Progression",
    "Note",
    "Composition",
    "canonical_key",
    "midi_to_note",
    "note_to_midi",
]
