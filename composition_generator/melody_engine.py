"""Phrase-structured melody generation over a voiced progression.

Underlying Algorithm
--------------------
The progression's timeline is split into phrases of equal length.  Each
phrase is either generated freely or, once a motif has been captured, built
by replaying that motif from a new starting pitch::

    for phrase in phrases:
        if motif and random() < motif_reuse:
            pitches = realize_motif(motif, start=near(prev, chord_at(phrase.start)))
            lay pitches end to end with weighted durations
        else:
            for each quarter-beat position:
                if random() >= density: advance one step
                duration = weighted draw (style, metre, density, breather rule)
                sometimes a rest, otherwise a chord or scale tone near prev
            capture the motif from the first phrase with enough notes
        shape a cadence on the phrase's last note

Free generation prefers chord tones with probability ``chord_tone_preference``
and never leaps further than ``max_leap`` when a closer candidate exists.
Cadences pull the final note toward the root, third or fifth of the chord
sounding at the phrase end and lengthen and accent it in proportion to the
cadence strength.

All randomness comes from the :class:`~composition_generator.motif.MelodySession`
created for the run, so a seeded session replays identically.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from .dynamics import MAX_VELOCITY, note_velocity
from .models import Note, Progression, VoicedChord
from .motif import MelodySession, Motif, realize_motif
from .note_utils import NOTE_TO_PC, canonical_key, midi_to_note, snap_beats
from .phrase_planner import Phrase, phrase_markers, plan_phrases
from .rhythm_engine import MELODY_STEP, RhythmGenerator
from .theory import CHORD_INTERVALS, scale_intervals

if TYPE_CHECKING:
    from .config import GenerationConfig

__all__ = [
    "REST_CHANCE",
    "ChordTimeline",
    "MelodyResult",
    "build_scale_pool",
    "pick_nearest",
    "choose_melody_midi",
    "is_chord_tone",
    "cadence_tones",
    "cadence_target",
    "apply_cadence",
    "generate_melody",
    "transpose_melody_octaves",
]

logger = logging.getLogger(__name__)

REST_CHANCE = 0.18
NEAREST_POOL = 10
TOP_CHOICES = 4
NEAREST_PROBABILITY = 0.6
MAX_CADENCE_DURATION = 2.5
CADENCE_NOTE_BEATS = 1.0
_EPSILON = 1e-9


class ChordTimeline:
    """Beat-indexed view of a progression's chords."""

    def __init__(self, chords: Sequence[VoicedChord]) -> None:
        if not chords:
            raise ValueError("progression must contain at least one chord")
        self.chords = list(chords)
        self.total_beats = self.chords[-1].end_beat

    @classmethod
    def from_progression(cls, progression: Progression) -> "ChordTimeline":
        return cls(progression.chords)

    def chord_at(self, beat: float) -> VoicedChord:
        """Return the chord sounding at ``beat`` (the last chord past the end)."""

        for chord in self.chords:
            if chord.start_beat <= beat < chord.end_beat:
                return chord
        return self.chords[-1]


@dataclass(frozen=True)
class MelodyResult:
    """Output of :func:`generate_melody`."""

    notes: Tuple[Note, ...]
    phrase_markers: Tuple[float, ...]
    total_beats: float
    motif: Optional[Motif] = None
    reused_phrases: Tuple[int, ...] = ()


def build_scale_pool(key: str, mode: str, center_octave: int, harmonic_minor: bool = True) -> List[int]:
    """MIDI pitches of the key's scale across three octaves around ``center_octave``."""

    key_pc = NOTE_TO_PC[canonical_key(key)]
    pool = {
        key_pc + interval + (octave + 1) * 12
        for octave in range(center_octave - 1, center_octave + 2)
        for interval in scale_intervals(mode, harmonic_minor)
    }
    return sorted(pool)


def pick_nearest(pool: Sequence[int], target: float, n: int = NEAREST_POOL) -> List[int]:
    """The ``n`` pitches of ``pool`` closest to ``target`` (stable on ties)."""

    return sorted(pool, key=lambda m: abs(m - target))[:n]


def choose_melody_midi(
    chord_midis: Sequence[int],
    scale_pool: Sequence[int],
    prev_midi: Optional[int],
    chord_tone_pref: float,
    max_leap: int,
    rng: random.Random,
) -> int:
    """Pick the next melody pitch.

    Parameters
    ----------
    chord_midis:
        Voicing of the chord sounding at the note's start.
    scale_pool:
        Scale pitches from :func:`build_scale_pool`.
    prev_midi:
        Previous melody pitch, or ``None`` at the start of the melody.
    chord_tone_pref:
        Probability ``0-1`` of drawing from the chord instead of the scale.
    max_leap:
        Largest interval from ``prev_midi`` allowed when any candidate fits.
    rng:
        Random source.

    Returns
    -------
    int
        Usually the candidate nearest ``prev_midi``; otherwise a uniform pick
        among the closest few to keep lines from becoming static.
    """

    center = sum(chord_midis) / len(chord_midis)
    target = prev_midi if prev_midi is not None else center

    prefer_chord = rng.random() < chord_tone_pref
    candidates = pick_nearest(chord_midis if prefer_chord else scale_pool, target)

    if prev_midi is not None:
        within = [m for m in candidates if abs(m - prev_midi) <= max_leap]
        if within:
            candidates = within

    if prev_midi is not None and rng.random() < NEAREST_PROBABILITY:
        return min(candidates, key=lambda m: abs(m - prev_midi))

    return rng.choice(candidates[:TOP_CHOICES])


def is_chord_tone(midi: int, chord: VoicedChord) -> bool:
    """``True`` when ``midi`` shares a pitch class with the chord's voicing."""

    return midi % 12 in chord.pitch_classes


def _nearest_with_pc(pc: int, reference: int) -> int:
    below = reference - ((reference - pc) % 12)
    above = below + 12
    return below if reference - below <= above - reference else above


def cadence_tones(chord: VoicedChord) -> Tuple[int, Optional[int], Optional[int]]:
    """Return the pitch classes of the root, third and fifth of ``chord``.

    Tones are looked up by letter step in the chord recipe.  Suspended chords
    have no third, so their suspended second or fourth stands in for it.
    ``None`` marks a tone the chord lacks.
    """

    spec = chord.spec
    recipe = CHORD_INTERVALS.get(spec.chord_type)
    if recipe is None:
        extra = [p % 12 for p in spec.base_pitches[1:3]] + [None, None]
        return spec.root_pc, extra[0], extra[1]
    by_step = {step: semitones for semitones, step in recipe}
    third = by_step.get(2)
    if third is None:
        third = by_step.get(3, by_step.get(1))
    fifth = by_step.get(4)

    def pc(semitones: Optional[int]) -> Optional[int]:
        return None if semitones is None else (spec.root_pc + semitones) % 12

    return spec.root_pc, pc(third), pc(fifth)


def cadence_target(chord: VoicedChord, strength: float, reference: int, rng: random.Random) -> int:
    """Draw a cadence pitch among the chord's root, third and fifth.

    Weights are ``3 : 2(1-s) : (1-s)`` for strength ``s``, so the root is always
    the favourite and a full-strength cadence always lands on it.  For
    suspended chords the suspended tone takes the third's weight (see
    :func:`cadence_tones`).  The chosen pitch class is placed in the octave
    nearest ``reference``.
    """

    root, third, fifth = cadence_tones(chord)
    tones = [root]
    weights = [3.0]
    for tone, weight in ((third, 2.0), (fifth, 1.0)):
        if tone is not None:
            tones.append(tone)
            weights.append(weight * (1.0 - strength))
    pc = rng.choices(tones, weights=weights, k=1)[0]
    return _nearest_with_pc(pc, reference)


def apply_cadence(
    note: Note,
    phrase: Phrase,
    end_chord: VoicedChord,
    timeline: ChordTimeline,
    strength: float,
    rng: random.Random,
    prefer: str = "sharps",
    key: Optional[str] = None,
) -> Note:
    """Shape the final ``note`` of ``phrase`` into a cadence.

    With probability ``strength`` the pitch is pulled to a chord tone of
    ``end_chord``.  Duration and velocity grow with ``strength``; the duration
    is capped at 2.5 beats and never crosses the phrase end.  Rests are
    returned unchanged.
    """

    if note.is_rest or note.midi is None:
        return note

    midi = note.midi
    if rng.random() < strength:
        midi = cadence_target(end_chord, strength, midi, rng)

    duration = min(MAX_CADENCE_DURATION, max(note.duration_beats, 0.5 + 1.5 * strength))
    duration = min(duration, phrase.end_beat - note.start_beat)
    velocity = min(MAX_VELOCITY, note.velocity + 0.12 * strength)

    return replace(
        note,
        midi=midi,
        pitch=midi_to_note(midi, prefer, key),
        duration_beats=duration,
        velocity=velocity,
        is_chord_tone=is_chord_tone(midi, timeline.chord_at(note.start_beat)),
    )


class _PhraseWriter:
    """Generates the notes of individual phrases for one melody run."""

    def __init__(self, timeline: ChordTimeline, config: "GenerationConfig", session: MelodySession) -> None:
        self.timeline = timeline
        self.config = config
        self.session = session
        self.key = canonical_key(config.key)
        self.prefer = config.accidental_preference
        self.scale_pool = build_scale_pool(
            self.key, config.mode, config.octave + 1, config.harmonic_minor_dominant
        )
        self.rhythm = RhythmGenerator(config.rhythm_style, config.melody_density)
        self.density = config.melody_density / 100
        self.chord_tone_pref = config.chord_tone_preference / 100
        self.reuse_probability = config.motif_reuse_probability / 100
        self.cadence_strength = config.cadence_strength / 100

    def _pitched(self, midi: int, start: float, duration: float) -> Note:
        rng = self.session.rng
        chord = self.timeline.chord_at(start)
        note = Note(
            start_beat=start,
            duration_beats=duration,
            pitch=midi_to_note(midi, self.prefer, self.key),
            midi=midi,
            velocity=note_velocity(start % 4, rng),
            is_chord_tone=is_chord_tone(midi, chord),
        )
        self.session.prev_midi = midi
        self.session.last_duration = duration
        return note

    def free_phrase(self, phrase: Phrase) -> List[Note]:
        session = self.session
        rng = session.rng
        notes: List[Note] = []
        s = 0.0
        while s < phrase.beats - _EPSILON:
            s = snap_beats(s, MELODY_STEP)
            start = phrase.start_beat + s
            remaining = phrase.end_beat - start

            if not rng.random() < self.density:
                s = snap_beats(s + MELODY_STEP, MELODY_STEP)
                continue

            duration = self.rhythm.next_duration(remaining, start % 4, session.last_duration, rng)
            if rng.random() < REST_CHANCE:
                notes.append(Note(start_beat=start, duration_beats=duration, is_rest=True))
                s = snap_beats(s + duration, MELODY_STEP)
                continue

            chord = self.timeline.chord_at(start)
            midi = choose_melody_midi(
                chord.voicing,
                self.scale_pool,
                session.prev_midi,
                self.chord_tone_pref,
                self.config.max_leap,
                rng,
            )
            notes.append(self._pitched(midi, start, duration))
            s = snap_beats(s + duration, MELODY_STEP)

        pitched = [(n.start_beat - phrase.start_beat, n.midi) for n in notes if not n.is_rest]
        if session.maybe_capture(pitched):
            logger.debug("Captured motif of %d notes in phrase %d", len(session.motif), phrase.index)
        return notes

    def reused_phrase(self, phrase: Phrase) -> List[Note]:
        session = self.session
        rng = session.rng
        chord = self.timeline.chord_at(phrase.start_beat)
        center = sum(chord.voicing) / len(chord.voicing)
        anchor = session.prev_midi if session.prev_midi is not None else round(center)
        start_midi = choose_melody_midi(
            chord.voicing,
            self.scale_pool,
            anchor,
            self.chord_tone_pref,
            self.config.max_leap,
            rng,
        )
        pitches = realize_motif(session.motif, phrase.beats, start_midi, self.config.max_leap)

        notes: List[Note] = []
        s = 0.0
        for midi in pitches:
            if s >= phrase.beats - _EPSILON:
                break
            start = phrase.start_beat + s
            remaining = phrase.end_beat - start
            duration = self.rhythm.next_duration(remaining, start % 4, session.last_duration, rng)
            notes.append(self._pitched(midi, start, duration))
            s = snap_beats(s + duration, MELODY_STEP)
        return notes

    def _cadence_note(self, phrase: Phrase, notes: List[Note], end_chord: VoicedChord) -> List[Note]:
        """Place an ungated cadence note in a phrase that has no pitched note."""

        start = max(phrase.start_beat, phrase.end_beat - CADENCE_NOTE_BEATS)
        kept: List[Note] = []
        for n in notes:
            if n.start_beat >= start:
                continue
            if n.end_beat > start:
                n = replace(n, duration_beats=start - n.start_beat)
            kept.append(n)

        reference = self.session.prev_midi
        if reference is None:
            reference = sum(end_chord.voicing) / len(end_chord.voicing)
        midi = min(end_chord.voicing, key=lambda m: abs(m - reference))
        kept.append(self._pitched(midi, start, phrase.end_beat - start))
        return kept

    def finish_phrase(self, phrase: Phrase, notes: List[Note]) -> List[Note]:
        end_chord = self.timeline.chord_at(max(0.0, phrase.end_beat - 0.001))
        if not any(not n.is_rest for n in notes):
            notes = self._cadence_note(phrase, notes, end_chord)

        last = notes[-1]
        shaped = apply_cadence(
            last,
            phrase,
            end_chord,
            self.timeline,
            self.cadence_strength,
            self.session.rng,
            self.prefer,
            self.key,
        )
        if not shaped.is_rest:
            self.session.prev_midi = shaped.midi
        notes[-1] = shaped
        return notes


def generate_melody(
    progression: Progression,
    config: "GenerationConfig",
    rng: Optional[random.Random] = None,
    session: Optional[MelodySession] = None,
) -> MelodyResult:
    """Generate a phrase-structured melody over ``progression``.

    Parameters
    ----------
    progression:
        Voiced progression with durations assigned.
    config:
        Generation options; the melody reads key, mode, octave, accidental
        preference, rhythm style, density, chord-tone preference, max leap,
        phrase length, motif reuse and cadence strength.
    rng:
        Random source used when ``session`` is omitted.
    session:
        Explicit session, mainly for tests that want to inspect or pre-seed
        the motif.

    Returns
    -------
    MelodyResult
        Notes ordered by start beat, phrase start markers and the total beat
        count.  The melody is not octave-shifted; see
        :func:`transpose_melody_octaves`.
    """

    if session is None:
        session = MelodySession(rng if rng is not None else random.Random())
    timeline = ChordTimeline.from_progression(progression)
    phrases = plan_phrases(timeline.total_beats, config.phrase_length_bars)
    writer = _PhraseWriter(timeline, config, session)

    melody: List[Note] = []
    reused: List[int] = []
    for phrase in phrases:
        reuse = (
            phrase.index > 0
            and session.motif is not None
            and session.rng.random() < writer.reuse_probability
        )
        if reuse:
            logger.debug("Reusing motif in phrase %d", phrase.index)
            reused.append(phrase.index)
            notes = writer.reused_phrase(phrase)
        else:
            notes = writer.free_phrase(phrase)
        melody.extend(writer.finish_phrase(phrase, notes))

    melody.sort(key=lambda n: n.start_beat)
    return MelodyResult(
        notes=tuple(melody),
        phrase_markers=tuple(phrase_markers(phrases)),
        total_beats=timeline.total_beats,
        motif=session.motif,
        reused_phrases=tuple(reused),
    )


def transpose_melody_octaves(
    notes: Sequence[Note],
    timeline: ChordTimeline,
    shift_octaves: int,
    prefer: str = "sharps",
    key: Optional[str] = None,
) -> List[Note]:
    """Shift every pitched note up ``shift_octaves`` octaves (clamped to 0-2).

    The chord-tone flag is recomputed against the chord sounding at each
    note's start beat.
    """

    shift = max(0, min(2, int(shift_octaves)))
    if shift == 0:
        return list(notes)

    out = []
    for note in notes:
        if note.is_rest or note.midi is None:
            out.append(note)
            continue
        midi = note.midi + 12 * shift
        out.append(
            replace(
                note,
                midi=midi,
                pitch=midi_to_note(midi, prefer, key),
                is_chord_tone=is_chord_tone(midi, timeline.chord_at(note.start_beat)),
            )
        )
    return out
