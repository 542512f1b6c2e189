"""Write compositions to Standard MIDI Files.

This module is the export adapter at the edge of the engine: it reads a
finished :class:`~composition_generator.models.Composition` and never feeds
anything back into generation.

Track layout
------------
* Track 0 carries tempo, a 4/4 time signature and the melody on channel 0.
* Track 1 carries the chords on channel 1, articulated by a named
  *chord pattern* (see :data:`CHORD_PATTERNS`).

Chord tones are optionally strummed: each voice above the lowest starts
``strum_ms`` milliseconds after the one below it.  Lower voices are played
louder than upper ones and chords on beats one and three get a bar accent.
Pattern hits that would fall before the start of the piece (anticipations of
the first chord) are dropped.

Example
-------
>>> comp = generate_composition(seed=1)          # doctest: +SKIP
>>> create_midi_file(comp, "out/song.mid", tempo=96, strum_ms=12)  # doctest: +SKIP
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from .dynamics import humanize_events
from .errors import InvalidConfig
from .models import BEATS_PER_BAR, Composition, Progression

if TYPE_CHECKING:
    from mido import Message, MidiFile

__all__ = [
    "TICKS_PER_BEAT",
    "DEFAULT_CHORD_PATTERN",
    "ChordPattern",
    "CHORD_PATTERNS",
    "resolve_chord_pattern",
    "beats_to_seconds",
    "beats_to_ticks",
    "build_midi_file",
    "create_midi_file",
]

logger = logging.getLogger(__name__)

TICKS_PER_BEAT = 480
MELODY_CHANNEL = 0
CHORD_CHANNEL = 1
DEFAULT_CHORD_PATTERN = "sustain"

# Melody notes are released slightly early so repeated pitches re-articulate.
MELODY_GATE = 0.98
SUSTAIN_GATE = 0.95
MIN_GATE_BEATS = 0.05


@dataclass(frozen=True)
class ChordPattern:
    """Where a chord is struck within its span and how long each hit lasts.

    ``offsets`` are beats from the chord's start (negative values anticipate
    it).  ``gate_beats`` limits each hit; ``None`` sustains for the chord.
    """

    offsets: Tuple[float, ...]
    gate_beats: Optional[float] = None
    accent_on_one: bool = False

    @property
    def sustain(self) -> bool:
        return self.gate_beats is None


CHORD_PATTERNS: Dict[str, ChordPattern] = {
    "sustain": ChordPattern((0,)),
    "sustainAccent": ChordPattern((0,), accent_on_one=True),
    "hits13": ChordPattern((0, 2), 0.55),
    "hits24": ChordPattern((1, 3), 0.50),
    "quarterPulse": ChordPattern((0, 1, 2, 3), 0.40),
    "eighthPulse": ChordPattern((0, 0.5, 1, 1.5, 2, 2.5, 3, 3.5), 0.28),
    "anticipationInto": ChordPattern((-0.5, 0), 0.55),
    "anticipateHold": ChordPattern((-0.5,)),
}


def resolve_chord_pattern(name: Optional[str]) -> ChordPattern:
    """Return the pattern called ``name``, falling back to ``"sustain"``."""

    pattern = CHORD_PATTERNS.get(name or DEFAULT_CHORD_PATTERN)
    if pattern is None:
        logger.warning("Unknown chord pattern %r; using %r", name, DEFAULT_CHORD_PATTERN)
        pattern = CHORD_PATTERNS[DEFAULT_CHORD_PATTERN]
    return pattern


def beats_to_seconds(beats: float, tempo: float) -> float:
    """Convert ``beats`` to seconds at ``tempo`` BPM."""

    if tempo <= 0:
        raise InvalidConfig("tempo must be positive")
    return beats * 60.0 / tempo


def beats_to_ticks(beats: float) -> int:
    return int(round(beats * TICKS_PER_BEAT))


def _midi_velocity(velocity: float) -> int:
    """Map a ``0-1`` loudness to the MIDI ``1-127`` range."""

    return max(1, min(127, int(round(velocity * 127))))


def _chord_voice_velocity(voice: int, beat_in_bar: float, accent_on_one: bool) -> float:
    velocity = max(0.35, 0.72 - voice * 0.06)
    if accent_on_one and beat_in_bar == 0:
        velocity *= 1.12
    if beat_in_bar == 0:
        velocity *= 1.18
    elif beat_in_bar == 2:
        velocity *= 1.08
    return min(0.95, velocity)


def _chord_events(
    progression: Progression,
    pattern: ChordPattern,
    strum_ticks: int,
) -> List[Tuple[int, "Message"]]:
    from mido import Message

    events: List[Tuple[int, Message]] = []
    for chord in progression.chords:
        span = chord.duration_beats
        if pattern.sustain:
            default_gate = span * SUSTAIN_GATE
        else:
            default_gate = min(span * 0.9, pattern.gate_beats)

        for offset in pattern.offsets:
            if offset >= span:
                continue
            beat = chord.start_beat + offset
            if beat < 0:
                continue
            gate = max(MIN_GATE_BEATS, min(default_gate, span - max(0.0, offset)))
            beat_in_bar = beat % BEATS_PER_BAR
            start = beats_to_ticks(beat)
            length = max(1, beats_to_ticks(gate))

            for voice, midi in enumerate(chord.voicing):
                tick = start + voice * strum_ticks
                velocity = _midi_velocity(
                    _chord_voice_velocity(voice, beat_in_bar, pattern.accent_on_one)
                )
                events.append(
                    (tick, Message("note_on", note=midi, velocity=velocity, channel=CHORD_CHANNEL))
                )
                events.append(
                    (tick + length, Message("note_off", note=midi, velocity=0, channel=CHORD_CHANNEL))
                )
    return events


def _melody_events(composition: Composition) -> List[Tuple[int, "Message"]]:
    from mido import Message

    events: List[Tuple[int, Message]] = []
    for note in composition.pitched_notes:
        start = beats_to_ticks(note.start_beat)
        end = max(start + 1, beats_to_ticks(note.start_beat + note.duration_beats * MELODY_GATE))
        velocity = _midi_velocity(note.velocity)
        events.append(
            (start, Message("note_on", note=note.midi, velocity=velocity, channel=MELODY_CHANNEL))
        )
        events.append(
            (end, Message("note_off", note=note.midi, velocity=0, channel=MELODY_CHANNEL))
        )
    return events


def _append_events(track, events: List[Tuple[int, "Message"]]) -> None:
    """Append absolute-tick ``events`` to ``track`` as delta times.

    At equal ticks note-offs come first so a release never cuts off a note
    that starts at the same moment.
    """

    events.sort(key=lambda pair: (pair[0], 0 if pair[1].type == "note_off" else 1))
    last = 0
    for tick, msg in events:
        msg.time = tick - last
        track.append(msg)
        last = tick


def build_midi_file(
    composition: Composition,
    tempo: float = 100,
    strum_ms: float = 0,
    chord_pattern: Optional[str] = None,
    program: int = 0,
    chord_program: int = 0,
    humanize: bool = True,
    rng: Optional[random.Random] = None,
) -> "MidiFile":
    """Render ``composition`` as an in-memory ``MidiFile``.

    Parameters
    ----------
    composition:
        The composition to render.
    tempo:
        Beats per minute. Must be positive.
    strum_ms:
        Delay between successive chord voices in milliseconds.
    chord_pattern:
        Name from :data:`CHORD_PATTERNS`; defaults to the progression's own
        pattern.  Unknown names fall back to ``"sustain"`` with a warning.
    program, chord_program:
        General MIDI programs for the melody and chord tracks.
    humanize:
        Jitter timing and velocities with :func:`humanize_events`.
    rng:
        Random source for humanisation.

    Raises
    ------
    InvalidConfig
        If ``tempo``, ``strum_ms`` or a program number is out of range.
    """
    try:
        import mido
        from mido import Message, MidiFile, MidiTrack
    except ModuleNotFoundError as exc:
        raise ImportError(
            "mido is required to create MIDI files; install it with 'pip install mido'"
        ) from exc

    if tempo <= 0:
        raise InvalidConfig("tempo must be positive")
    if strum_ms < 0:
        raise InvalidConfig("strum_ms must not be negative")
    for value in (program, chord_program):
        if not 0 <= value <= 127:
            raise InvalidConfig("MIDI program must be between 0 and 127")

    pattern = resolve_chord_pattern(chord_pattern or composition.progression.chord_pattern)
    strum_ticks = beats_to_ticks(strum_ms / 1000.0 * tempo / 60.0)

    mid = MidiFile(ticks_per_beat=TICKS_PER_BEAT)
    melody_track = MidiTrack()
    chord_track = MidiTrack()
    mid.tracks.append(melody_track)
    mid.tracks.append(chord_track)

    melody_track.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(tempo)))
    melody_track.append(mido.MetaMessage("time_signature", numerator=4, denominator=4))
    melody_track.append(Message("program_change", program=program, channel=MELODY_CHANNEL, time=0))
    chord_track.append(Message("program_change", program=chord_program, channel=CHORD_CHANNEL, time=0))

    _append_events(melody_track, _melody_events(composition))
    _append_events(chord_track, _chord_events(composition.progression, pattern, strum_ticks))

    if humanize:
        rng = rng if rng is not None else random.Random(composition.seed)
        for track in mid.tracks:
            humanize_events(track, rng)
    return mid


def create_midi_file(
    composition: Composition,
    output_file: str,
    tempo: float = 100,
    strum_ms: float = 0,
    chord_pattern: Optional[str] = None,
    program: int = 0,
    chord_program: int = 0,
    humanize: bool = True,
    rng: Optional[random.Random] = None,
) -> "MidiFile":
    """Write ``composition`` to ``output_file`` and return the ``MidiFile``.

    The parent directory of ``output_file`` is created when missing.  See
    :func:`build_midi_file` for the remaining parameters.
    """

    mid = build_midi_file(
        composition,
        tempo=tempo,
        strum_ms=strum_ms,
        chord_pattern=chord_pattern,
        program=program,
        chord_program=chord_program,
        humanize=humanize,
        rng=rng,
    )
    path = Path(output_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    mid.save(str(path))
    logger.info("MIDI file saved to %s", path)
    return mid
