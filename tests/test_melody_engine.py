"""Tests for the phrase-structured melody generator.

Progressions are built with the real harmony pipeline so the melody is
exercised against realistic voicings; properties are checked over a range
of seeds.
"""

import importlib
import random
import sys
from dataclasses import replace
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

me = importlib.import_module("composition_generator.melody_engine")
composer = importlib.import_module("composition_generator.composer")
config_module = importlib.import_module("composition_generator.config")
models = importlib.import_module("composition_generator.models")
motif_module = importlib.import_module("composition_generator.motif")
phrase_planner = importlib.import_module("composition_generator.phrase_planner")

SEEDS = range(25)


def _setup(seed, **overrides):
    config = config_module.GenerationConfig.from_mapping(overrides)
    rng = random.Random(seed)
    progression = composer.build_progression(config, rng)
    return config, rng, progression


def _phrases(progression, config):
    return phrase_planner.plan_phrases(progression.total_beats, config.phrase_length_bars)


def _notes_in(notes, phrase):
    return [n for n in notes if phrase.contains(n.start_beat)]


def _chord(voicing, start, duration, root_pc=0, base=None):
    spec = models.ChordSpec(
        numeral="1",
        roman="I",
        quality="Major",
        chord_type="Triad (Major)",
        degree=1,
        root_pc=root_pc,
        root="C3",
        base_pitches=tuple(base or voicing),
        spelled_root="C",
        spelled_tones=("C", "E", "G"),
        duration_beats=duration,
    )
    return models.VoicedChord(spec, tuple(voicing), (), start)


def test_chord_timeline_lookup():
    c1 = _chord((60, 64, 67), 0.0, 4.0)
    c2 = _chord((62, 65, 69), 4.0, 4.0, root_pc=2)
    timeline = me.ChordTimeline([c1, c2])
    assert timeline.total_beats == 8.0
    assert timeline.chord_at(0) is c1
    assert timeline.chord_at(3.99) is c1
    assert timeline.chord_at(4.0) is c2
    assert timeline.chord_at(12.0) is c2
    with pytest.raises(ValueError):
        me.ChordTimeline([])


def test_scale_pool_spans_three_octaves():
    pool = me.build_scale_pool("C", "major", 4)
    assert len(pool) == 21
    assert pool[0] == 48 and pool[-1] == 83
    assert all(m % 12 in {0, 2, 4, 5, 7, 9, 11} for m in pool)
    minor = me.build_scale_pool("A", "minor", 4)
    assert any(m % 12 == 8 for m in minor)


def test_pick_nearest_orders_by_distance():
    assert me.pick_nearest([48, 60, 62, 64, 72], 61, n=3) == [60, 62, 64]


@pytest.mark.parametrize("seed", SEEDS)
def test_choose_melody_midi_respects_leap_and_sources(seed):
    rng = random.Random(seed)
    # C major tones spread over the pool so a chord tone is always in reach.
    chord = [60, 64, 67, 72, 76, 79, 84, 88, 91]
    pool = me.build_scale_pool("C", "major", 5)
    prev = 71
    for _ in range(20):
        midi = me.choose_melody_midi(chord, pool, prev, 0.6, 5, rng)
        assert midi in chord or midi in pool
        assert abs(midi - prev) <= 5
        prev = midi


def test_choose_melody_midi_without_previous_pitch():
    rng = random.Random(1)
    chord = [60, 64, 67]
    pool = me.build_scale_pool("C", "major", 5)
    picks = {me.choose_melody_midi(chord, pool, None, 1.0, 7, rng) for _ in range(50)}
    assert picks <= set(chord)


def test_apply_cadence_full_strength_lands_on_root():
    chord = _chord((55, 59, 62), 0.0, 8.0, root_pc=7)
    timeline = me.ChordTimeline([chord])
    phrase = phrase_planner.Phrase(0, 0.0, 8.0)
    note = models.Note(start_beat=6.0, duration_beats=0.5, pitch="A4", midi=69, velocity=0.9)
    shaped = me.apply_cadence(note, phrase, chord, timeline, 1.0, random.Random(0))
    assert shaped.midi == 67
    assert shaped.pitch == "G4"
    assert shaped.duration_beats == 2.0
    assert shaped.velocity == pytest.approx(0.95)
    assert shaped.is_chord_tone


def test_apply_cadence_never_crosses_phrase_end():
    chord = _chord((60, 64, 67), 0.0, 4.0)
    timeline = me.ChordTimeline([chord])
    phrase = phrase_planner.Phrase(0, 0.0, 4.0)
    note = models.Note(start_beat=3.5, duration_beats=0.25, pitch="E4", midi=64, velocity=0.7)
    shaped = me.apply_cadence(note, phrase, chord, timeline, 1.0, random.Random(0))
    assert shaped.end_beat == 4.0


def test_apply_cadence_leaves_rests_alone():
    chord = _chord((60, 64, 67), 0.0, 4.0)
    rest = models.Note(start_beat=3.0, duration_beats=1.0, is_rest=True)
    phrase = phrase_planner.Phrase(0, 0.0, 4.0)
    shaped = me.apply_cadence(rest, phrase, chord, me.ChordTimeline([chord]), 1.0, random.Random(0))
    assert shaped is rest


def test_cadence_target_weights_favour_root():
    chord = _chord((60, 64, 67), 0.0, 4.0, root_pc=0, base=(48, 52, 55))
    rng = random.Random(9)
    counts = {0: 0, 4: 0, 7: 0}
    for _ in range(600):
        counts[me.cadence_target(chord, 0.0, 62, rng) % 12] += 1
    assert counts[0] > counts[4] > counts[7] > 0


@pytest.mark.parametrize(
    "chord_type, base, expected",
    [
        ("Triad (Major)", (48, 52, 55), (0, 4, 7)),
        ("Major 9", (48, 52, 55, 59, 62), (0, 4, 7)),
        ("sus2", (48, 50, 55), (0, 2, 7)),
        ("sus4", (48, 53, 55), (0, 5, 7)),
        ("Dominant 7sus4", (48, 53, 55, 58), (0, 5, 7)),
    ],
)
def test_cadence_tones_follow_letter_steps(chord_type, base, expected):
    chord = models.VoicedChord(replace(_chord(base, 0.0, 4.0).spec, chord_type=chord_type), base)
    assert me.cadence_tones(chord) == expected


def test_sus4_cadence_never_targets_a_missing_third():
    base = (48, 53, 55)
    chord = models.VoicedChord(replace(_chord(base, 0.0, 4.0).spec, chord_type="sus4"), base)
    rng = random.Random(4)
    counts = {0: 0, 5: 0, 7: 0}
    for _ in range(600):
        counts[me.cadence_target(chord, 0.0, 62, rng) % 12] += 1
    assert counts[0] > counts[5] > counts[7] > 0


@pytest.mark.parametrize("seed", SEEDS)
def test_notes_stay_in_phrases_without_overlap(seed):
    config, rng, progression = _setup(seed, bars=8, chordsPerBar=2, rhythmStyle="jazz")
    result = me.generate_melody(progression, config, rng)
    phrases = _phrases(progression, config)
    assert result.phrase_markers == tuple(p.start_beat for p in phrases)
    assert result.total_beats == 32.0

    for phrase in phrases:
        for note in _notes_in(result.notes, phrase):
            assert note.end_beat <= phrase.end_beat + 1e-9
            assert note.duration_beats > 0

    starts = [n.start_beat for n in result.notes]
    assert starts == sorted(starts)
    for a, b in zip(result.notes, result.notes[1:]):
        assert a.end_beat <= b.start_beat + 1e-9


@pytest.mark.parametrize("seed", SEEDS)
def test_chord_tone_flags_match_sounding_chord(seed):
    config, rng, progression = _setup(seed)
    result = me.generate_melody(progression, config, rng)
    timeline = me.ChordTimeline.from_progression(progression)
    for note in result.notes:
        if note.is_rest:
            assert note.midi is None and note.velocity == 0.0
            continue
        assert note.is_chord_tone == (note.midi % 12 in timeline.chord_at(note.start_beat).pitch_classes)


def test_reused_motif_intervals_match_clamped_deltas():
    checked = 0
    for seed in SEEDS:
        config, rng, progression = _setup(
            seed, bars=8, motifReuseProbability=100, cadenceStrength=0, maxLeap=4
        )
        result = me.generate_melody(progression, config, rng)
        if result.motif is None:
            continue

        phrases = _phrases(progression, config)
        expected_steps = [motif_module.clamp_step(d, 4) for d in result.motif.deltas]
        for index in result.reused_phrases:
            notes = _notes_in(result.notes, phrases[index])
            pitches = [n.midi for n in notes]
            steps = [b - a for a, b in zip(pitches, pitches[1:])]
            assert steps == expected_steps[: len(steps)]
            assert all(not n.is_rest for n in notes)
            checked += 1
    assert checked > 0


def test_reuse_happens_when_probability_is_certain():
    reused = 0
    for seed in SEEDS:
        config, rng, progression = _setup(seed, bars=8, motifReuseProbability=100)
        result = me.generate_melody(progression, config, rng)
        if result.motif is not None:
            assert 0 not in result.reused_phrases
            reused += len(result.reused_phrases)
    assert reused > 0


@pytest.mark.parametrize("seed", SEEDS)
def test_zero_leap_repeats_pitch_in_reused_phrases(seed):
    config, rng, progression = _setup(
        seed, bars=8, motifReuseProbability=100, cadenceStrength=0, maxLeap=0
    )
    result = me.generate_melody(progression, config, rng)
    phrases = _phrases(progression, config)
    for index in result.reused_phrases:
        pitches = {n.midi for n in _notes_in(result.notes, phrases[index])}
        assert len(pitches) == 1


def test_reuse_disabled_never_reuses():
    for seed in SEEDS:
        config, rng, progression = _setup(seed, bars=8, motifReuseProbability=0)
        assert me.generate_melody(progression, config, rng).reused_phrases == ()


@pytest.mark.parametrize("seed", SEEDS)
def test_zero_density_leaves_only_cadence_notes(seed):
    config, rng, progression = _setup(seed, bars=6, melodyDensity=0)
    result = me.generate_melody(progression, config, rng)
    phrases = _phrases(progression, config)
    assert len(result.notes) == len(phrases)
    for note, phrase in zip(result.notes, phrases):
        assert not note.is_rest
        assert note.start_beat == phrase.end_beat - 1.0
        assert note.end_beat == phrase.end_beat


@pytest.mark.parametrize("seed", SEEDS)
def test_full_cadence_strength_ends_phrases_on_the_root(seed):
    config, rng, progression = _setup(seed, bars=8, cadenceStrength=100)
    result = me.generate_melody(progression, config, rng)
    timeline = me.ChordTimeline.from_progression(progression)
    for phrase in _phrases(progression, config):
        notes = _notes_in(result.notes, phrase)
        last = notes[-1]
        if last.is_rest:
            continue
        end_chord = timeline.chord_at(phrase.end_beat - 0.001)
        assert last.midi % 12 == end_chord.spec.root_pc


def test_same_seed_same_melody():
    config, _, progression = _setup(3)
    first = me.generate_melody(progression, config, random.Random(42))
    second = me.generate_melody(progression, config, random.Random(42))
    assert first == second


def test_transpose_melody_octaves():
    chord = _chord((60, 64, 67), 0.0, 4.0)
    timeline = me.ChordTimeline([chord])
    notes = [
        models.Note(0.0, 1.0, "E4", 64, 0.8, False, True),
        models.Note(1.0, 1.0, is_rest=True),
        models.Note(2.0, 1.0, "D4", 62, 0.8, False, False),
    ]
    shifted = me.transpose_melody_octaves(notes, timeline, 5)
    assert [n.midi for n in shifted] == [88, None, 86]
    assert shifted[0].pitch == "E6"
    assert shifted[1] is notes[1]
    assert [n.is_chord_tone for n in shifted] == [True, False, False]
    assert me.transpose_melody_octaves(notes, timeline, -1) == notes
