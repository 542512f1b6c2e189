"""Immutable records describing a generated composition.

Every record is a frozen dataclass with tuple-valued collections so a
:class:`Composition` cannot be modified once the assembler has returned it.
``to_dict`` methods produce plain JSON-compatible documents using the
camelCase field names consumed by playback, rendering and export tools.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

__all__ = ["ChordSpec", "VoicedChord", "Progression", "Note", "Composition"]

BEATS_PER_BAR = 4


@dataclass(frozen=True)
class ChordSpec:
    """An unvoiced chord built on one scale degree.

    ``base_pitches`` follow the chord type's interval recipe in order, added
    to a root anchored at the requested octave.  They are not yet inverted or
    shifted into a register.
    """

    numeral: str
    roman: str
    quality: str
    chord_type: str
    degree: int
    root_pc: int
    root: str
    base_pitches: Tuple[int, ...]
    spelled_root: str
    spelled_tones: Tuple[str, ...]
    duration_beats: float = 0.0


@dataclass(frozen=True)
class VoicedChord:
    """A :class:`ChordSpec` with the concrete pitches actually sounded.

    ``end_beat`` defaults to ``start_beat`` plus the chord's duration; the
    voice leader passes it explicitly so neighbouring chords share an exact
    boundary.
    """

    spec: ChordSpec
    voicing: Tuple[int, ...]
    notes: Tuple[str, ...] = ()
    start_beat: float = 0.0
    end_beat: Optional[float] = None

    def __post_init__(self) -> None:
        if self.end_beat is None:
            object.__setattr__(self, "end_beat", self.start_beat + self.spec.duration_beats)

    @property
    def duration_beats(self) -> float:
        return self.spec.duration_beats

    @property
    def pitch_classes(self) -> frozenset:
        """Pitch classes present in the voicing."""

        return frozenset(m % 12 for m in self.voicing)

    def to_dict(self) -> Dict[str, Any]:
        spec = self.spec
        return {
            "roman": spec.roman,
            "numeral": spec.numeral,
            "root": spec.root,
            "quality": spec.quality,
            "chordType": spec.chord_type,
            "degree": spec.degree,
            "rootPc": spec.root_pc,
            "baseMidis": list(spec.base_pitches),
            "spelledRoot": spec.spelled_root,
            "spelledTones": list(spec.spelled_tones),
            "voicingMidis": list(self.voicing),
            "notes": list(self.notes),
            "durationBeats": spec.duration_beats,
            "startBeat": self.start_beat,
        }


@dataclass(frozen=True)
class Progression:
    """Ordered voiced chords filling ``bars`` bars of 4/4."""

    key: str
    mode: str
    bars: int
    chords_per_bar: int
    chord_pattern: str
    octave: int
    chords: Tuple[VoicedChord, ...]

    @property
    def total_beats(self) -> float:
        return float(self.bars * BEATS_PER_BAR)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "mode": self.mode,
            "bars": self.bars,
            "chordsPerBar": self.chords_per_bar,
            "chordPattern": self.chord_pattern,
            "octave": self.octave,
            "template": "ruleBased",
            "totalBeats": self.total_beats,
            "chords": [ch.to_dict() for ch in self.chords],
        }


@dataclass(frozen=True)
class Note:
    """A melody note or rest.

    ``pitch`` and ``midi`` are ``None`` for rests.  ``velocity`` is a
    loudness proxy between ``0`` and ``1``.
    """

    start_beat: float
    duration_beats: float
    pitch: Optional[str] = None
    midi: Optional[int] = None
    velocity: float = 0.0
    is_rest: bool = False
    is_chord_tone: bool = False

    @property
    def end_beat(self) -> float:
        return self.start_beat + self.duration_beats

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pitch": self.pitch,
            "midi": self.midi,
            "startBeat": self.start_beat,
            "durationBeats": self.duration_beats,
            "velocity": round(self.velocity, 4),
            "isRest": self.is_rest,
            "isChordTone": self.is_chord_tone,
        }


@dataclass(frozen=True)
class Composition:
    """The engine's sole output: harmony, melody and phrase layout."""

    progression: Progression
    melody: Tuple[Note, ...]
    phrase_markers: Tuple[float, ...]
    total_beats: float
    seed: Optional[int] = field(default=None, compare=False)

    @property
    def pitched_notes(self) -> Tuple[Note, ...]:
        return tuple(n for n in self.melody if not n.is_rest)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "progression": self.progression.to_dict(),
            "melody": [n.to_dict() for n in self.melody],
            "phraseMarkers": list(self.phrase_markers),
            "totalBeats": self.total_beats,
            "seed": self.seed,
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)
