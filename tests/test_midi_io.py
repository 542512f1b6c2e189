"""Unit tests for MIDI export.

The suite renders small generated compositions with ``humanize=False`` so tick
positions can be asserted exactly, and checks the chord articulation patterns,
strumming and the helpful error raised when ``mido`` is missing.
"""

from __future__ import annotations

import builtins
import importlib
import logging
import sys
from pathlib import Path

import mido
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

midi_io = importlib.import_module("composition_generator.midi_io")
composer = importlib.import_module("composition_generator.composer")
errors = importlib.import_module("composition_generator.errors")


@pytest.fixture
def composition():
    return composer.generate_composition({"bars": 4, "chordsPerBar": 1}, seed=21)


def _absolute(track):
    tick = 0
    out = []
    for msg in track:
        tick += msg.time
        out.append((tick, msg))
    return out


def _note_ons(track):
    return [(t, m) for t, m in _absolute(track) if m.type == "note_on"]


def test_create_midi_file_writes_and_returns_midifile(tmp_path, composition):
    out = tmp_path / "new" / "song.mid"
    mid = midi_io.create_midi_file(composition, str(out), tempo=120)
    assert isinstance(mid, mido.MidiFile)
    assert out.exists()
    assert mid.ticks_per_beat == midi_io.TICKS_PER_BEAT
    assert len(mid.tracks) == 2

    reloaded = mido.MidiFile(str(out))
    tempos = [m.tempo for m in reloaded.tracks[0] if m.type == "set_tempo"]
    assert tempos == [mido.bpm2tempo(120)]


def test_melody_track_matches_pitched_notes(composition):
    mid = midi_io.build_midi_file(composition, humanize=False)
    ons = _note_ons(mid.tracks[0])
    expected = [
        (midi_io.beats_to_ticks(n.start_beat), n.midi) for n in composition.pitched_notes
    ]
    assert [(t, m.note) for t, m in ons] == expected
    assert all(m.channel == midi_io.MELODY_CHANNEL for _, m in ons)


def test_sustain_pattern_strikes_each_chord_once(composition):
    mid = midi_io.build_midi_file(composition, chord_pattern="sustain", humanize=False)
    ons = _note_ons(mid.tracks[1])
    assert len(ons) == sum(len(ch.voicing) for ch in composition.progression.chords)
    first = composition.progression.chords[0]
    assert sorted(m.note for t, m in ons if t == 0) == sorted(first.voicing)


def test_pulse_patterns_multiply_hits(composition):
    voices = sum(len(ch.voicing) for ch in composition.progression.chords)
    mid = midi_io.build_midi_file(composition, chord_pattern="quarterPulse", humanize=False)
    assert len(_note_ons(mid.tracks[1])) == 4 * voices
    mid = midi_io.build_midi_file(composition, chord_pattern="hits24", humanize=False)
    ticks = {t for t, _ in _note_ons(mid.tracks[1])}
    assert 0 not in ticks and midi_io.TICKS_PER_BEAT in ticks


def test_anticipation_before_start_is_dropped(composition):
    mid = midi_io.build_midi_file(composition, chord_pattern="anticipateHold", humanize=False)
    ons = _note_ons(mid.tracks[1])
    chords = composition.progression.chords
    assert len(ons) == sum(len(ch.voicing) for ch in chords[1:])
    assert min(t for t, _ in ons) == midi_io.beats_to_ticks(chords[1].start_beat - 0.5)


def test_strum_offsets_voices(composition):
    mid = midi_io.build_midi_file(composition, tempo=60, strum_ms=100, humanize=False)
    first = composition.progression.chords[0]
    ons = _note_ons(mid.tracks[1])[: len(first.voicing)]
    assert [t for t, _ in ons] == [i * 48 for i in range(len(first.voicing))]


def test_lower_voices_are_louder(composition):
    mid = midi_io.build_midi_file(composition, humanize=False)
    first = composition.progression.chords[0]
    velocities = [m.velocity for _, m in _note_ons(mid.tracks[1])[: len(first.voicing)]]
    assert velocities == sorted(velocities, reverse=True)


def test_unknown_pattern_falls_back_to_sustain(composition, caplog):
    with caplog.at_level(logging.WARNING):
        mid = midi_io.build_midi_file(composition, chord_pattern="waltz", humanize=False)
    sustain = midi_io.build_midi_file(composition, chord_pattern="sustain", humanize=False)
    assert "Unknown chord pattern" in caplog.text
    assert [str(m) for m in mid.tracks[1]] == [str(m) for m in sustain.tracks[1]]


def test_humanize_is_reproducible(composition):
    import random

    a = midi_io.build_midi_file(composition, rng=random.Random(3))
    b = midi_io.build_midi_file(composition, rng=random.Random(3))
    assert [str(m) for m in a.tracks[0]] == [str(m) for m in b.tracks[0]]


@pytest.mark.parametrize(
    "kwargs", [{"tempo": 0}, {"strum_ms": -1}, {"program": 128}, {"chord_program": -1}]
)
def test_invalid_export_options(composition, kwargs):
    with pytest.raises(errors.InvalidConfig):
        midi_io.build_midi_file(composition, **kwargs)


def test_beats_to_seconds():
    assert midi_io.beats_to_seconds(2, 120) == 1.0
    assert midi_io.beats_to_seconds(3, 60) == 3.0
    with pytest.raises(errors.InvalidConfig):
        midi_io.beats_to_seconds(1, 0)


def test_create_midi_file_missing_mido(monkeypatch, tmp_path, composition):
    """Absent ``mido`` should raise ``ImportError`` with install guidance."""

    real_import = builtins.__import__

    def fake_import(name, *args, **kwargs):
        if name == "mido" or name.startswith("mido."):
            raise ModuleNotFoundError("No module named 'mido'")
        return real_import(name, *args, **kwargs)

    monkeypatch.setattr(builtins, "__import__", fake_import)
    with pytest.raises(ImportError, match="pip install mido"):
        midi_io.create_midi_file(composition, str(tmp_path / "x.mid"))
