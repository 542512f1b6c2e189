"""End-to-end tests for the composition assembler."""

import importlib
import json
import math
import random
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

composer = importlib.import_module("composition_generator.composer")
config_module = importlib.import_module("composition_generator.config")
errors = importlib.import_module("composition_generator.errors")
pkg = importlib.import_module("composition_generator")

CONFIGS = [
    {},
    {"key": "Eb", "mode": "minor", "bars": 8, "chordsPerBar": 2},
    {"key": "F#", "bars": 3, "chordsPerBar": 4, "progressionLength": 6, "slotMappingPolicy": "loop"},
    {"key": "Bb", "bars": 5, "progressionLength": 9, "slotMappingPolicy": "stretch", "phraseLengthBars": 3},
    {"key": "A", "mode": "minor", "harmonicStyle": "simple", "octave": 1, "melodyOctaveShift": 2},
    {"key": "D", "bars": 5, "chordsPerBar": 3},
    {"key": "Ab", "mode": "minor", "bars": 10, "chordsPerBar": 6, "phraseLengthBars": 3},
    {"key": "E", "bars": 16, "chordsPerBar": 7, "phraseLengthBars": 1},
]


@pytest.mark.parametrize("options", CONFIGS)
@pytest.mark.parametrize("seed", range(8))
def test_progression_tiles_the_timeline(options, seed):
    comp = composer.generate_composition(options, seed=seed)
    config = config_module.GenerationConfig.from_mapping(options)
    chords = comp.progression.chords

    assert comp.total_beats == config.bars * 4
    assert comp.progression.total_beats == config.bars * 4
    assert len(chords) == config.bars * config.chords_per_bar
    assert chords[0].start_beat == 0.0
    for a, b in zip(chords, chords[1:]):
        assert a.end_beat == b.start_beat
    assert chords[-1].end_beat == comp.total_beats


@pytest.mark.parametrize("options", CONFIGS)
@pytest.mark.parametrize("seed", range(8))
def test_melody_is_ordered_and_non_overlapping(options, seed):
    comp = composer.generate_composition(options, seed=seed)
    markers = list(comp.phrase_markers) + [comp.total_beats]
    for note in comp.melody:
        assert 0 <= note.start_beat < comp.total_beats
        phrase_end = min(m for m in markers if m > note.start_beat)
        assert note.end_beat <= phrase_end + 1e-9
    for a, b in zip(comp.melody, comp.melody[1:]):
        assert a.start_beat < b.start_beat
        assert a.end_beat <= b.start_beat + 1e-9


@pytest.mark.parametrize("chords_per_bar", [3, 6, 7])
@pytest.mark.parametrize("bars", [3, 5, 10, 16])
@pytest.mark.parametrize("phrase_bars", [1, 2])
def test_uneven_chords_per_bar_keep_exact_length(bars, chords_per_bar, phrase_bars):
    comp = composer.generate_composition(
        {"bars": bars, "chordsPerBar": chords_per_bar, "phraseLengthBars": phrase_bars},
        seed=bars + chords_per_bar,
    )
    total = bars * 4
    assert comp.total_beats == total
    assert comp.progression.total_beats == total
    assert comp.progression.chords[-1].end_beat == total
    assert len(comp.phrase_markers) == math.ceil(bars / phrase_bars)
    assert all(marker < total for marker in comp.phrase_markers)
    for note in comp.melody:
        assert note.start_beat < total
        assert note.end_beat <= total


def test_two_chord_scenario_ends_on_cadence():
    for seed in range(40):
        comp = composer.generate_composition(
            {"key": "C", "mode": "major", "bars": 2, "chordsPerBar": 1,
             "progressionLength": 2, "slotMappingPolicy": "default"},
            seed=seed,
        )
        assert len(comp.progression.chords) == 2
        assert comp.progression.chords[1].spec.numeral in ("1", "6")


def test_seed_reproducibility_and_independence():
    a = composer.generate_composition({"bars": 8}, seed=99)
    b = composer.generate_composition({"bars": 8}, seed=99)
    assert a == b
    assert a.to_dict() == b.to_dict()

    rng_a, rng_b = random.Random(5), random.Random(5)
    first = composer.generate_composition({"bars": 8}, rng=rng_a)
    random.Random(123).random()
    second = composer.generate_composition({"bars": 8}, rng=rng_b)
    assert first == second


def test_octave_shift_is_a_pure_transposition():
    base = composer.generate_composition({"melodyOctaveShift": 0}, seed=12)
    shifted = composer.generate_composition({"melodyOctaveShift": 2}, seed=12)
    assert base.progression == shifted.progression
    for low, high in zip(base.melody, shifted.melody):
        if low.is_rest:
            assert high.is_rest
            continue
        assert high.midi == low.midi + 24
        assert high.is_chord_tone == low.is_chord_tone


def test_flat_key_renders_flats():
    for seed in range(10):
        comp = composer.generate_composition({"key": "Eb", "accidentalPreference": "sharps"}, seed=seed)
        names = [n.pitch for n in comp.pitched_notes]
        names += [name for ch in comp.progression.chords for name in ch.notes]
        assert not any("#" in name for name in names)


def test_invalid_configuration_raises_before_generation():
    with pytest.raises(errors.UnknownKey):
        composer.generate_composition({"key": "H"})
    with pytest.raises(errors.InvalidConfig):
        composer.generate_composition({"bars": 0})
    with pytest.raises(errors.InvalidConfig):
        composer.generate_composition(config_module.GenerationConfig(melody_density=150))


def test_json_document_shape():
    comp = composer.generate_composition({"bars": 2}, seed=4)
    doc = json.loads(comp.to_json())
    assert set(doc) == {"progression", "melody", "phraseMarkers", "totalBeats", "seed"}
    assert doc["seed"] == 4
    assert doc["totalBeats"] == 8
    prog = doc["progression"]
    assert prog["template"] == "ruleBased"
    assert prog["chordsPerBar"] == 1
    assert {"roman", "chordType", "voicingMidis", "spelledTones", "durationBeats", "startBeat"} <= set(prog["chords"][0])
    assert {"pitch", "midi", "startBeat", "durationBeats", "velocity", "isRest", "isChordTone"} == set(doc["melody"][0])


def test_package_exports():
    assert pkg.generate_composition is composer.generate_composition
    assert pkg.__version__ == "0.1.0"
    comp = pkg.generate_composition(seed=1)
    assert isinstance(comp, pkg.Composition)
