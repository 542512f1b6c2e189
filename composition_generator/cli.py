"""Command line interface for the composition generator.

``run_cli`` parses arguments, merges them over the saved settings file and
writes the generated composition as JSON (to stdout or ``--output``) and
optionally as a MIDI file (``--midi``).  :func:`main` configures logging and
is the target of both ``python -m composition_generator`` and the installed
``composition-generator`` script.

Options left unset on the command line fall back to the settings file, then
to the defaults of :class:`~composition_generator.config.GenerationConfig`.

Example
-------
Running ``python -m composition_generator --key Eb --mode minor --bars 8 \
    --seed 7 --output song.json --midi song.mid`` writes an eight bar
composition in E-flat minor to ``song.json`` and ``song.mid``.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .composer import generate_composition
from .config import (
    ACCIDENTAL_PREFERENCES,
    DEFAULT_SETTINGS_FILE,
    MAX_OCTAVE,
    MIN_OCTAVE,
    GenerationConfig,
    load_settings,
    save_settings,
)
from .errors import CompositionError
from .midi_io import CHORD_PATTERNS, create_midi_file
from .note_utils import NOTE_TO_PC
from .rhythm_engine import RHYTHM_PRESETS
from .slot_mapper import SLOT_POLICIES
from .theory import HARMONIC_STYLES, MODES

__all__ = ["build_parser", "run_cli", "main"]

# argparse destinations that map one-to-one onto GenerationConfig fields.
_CONFIG_DESTS = (
    "key",
    "mode",
    "bars",
    "chords_per_bar",
    "progression_length",
    "slot_mapping_policy",
    "chord_pattern",
    "octave",
    "accidental_preference",
    "rhythm_style",
    "melody_density",
    "chord_tone_preference",
    "max_leap",
    "phrase_length_bars",
    "motif_reuse_probability",
    "cadence_strength",
    "harmonic_style",
    "deceptive_cadence",
    "harmonic_minor_dominant",
    "melody_octave_shift",
    "tempo",
    "strum_ms",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate a chord progression with a melody and export it as JSON or MIDI."
    )
    parser.add_argument("--list-keys", action="store_true", help="List all supported keys and exit")
    parser.add_argument("--list-styles", action="store_true", help="List rhythm styles and exit")
    parser.add_argument("--list-patterns", action="store_true", help="List chord patterns and exit")

    parser.add_argument("--key", type=str, help="Tonic of the key (e.g. C, F#, Bb).")
    parser.add_argument("--mode", choices=MODES, help="Scale mode.")
    parser.add_argument("--bars", type=int, help="Number of 4/4 bars.")
    parser.add_argument("--chords-per-bar", dest="chords_per_bar", type=int, help="Chords in each bar.")
    parser.add_argument(
        "--progression-length",
        dest="progression_length",
        type=int,
        help="Length of the generated numeral sequence before it is mapped onto the bars.",
    )
    parser.add_argument(
        "--slot-policy",
        dest="slot_mapping_policy",
        choices=SLOT_POLICIES,
        help="How the numeral sequence fills the chord slots.",
    )
    parser.add_argument("--chord-pattern", dest="chord_pattern", type=str, help="Chord articulation used for MIDI export.")
    parser.add_argument(
        "--octave",
        type=int,
        help=f"Register of the chords ({MIN_OCTAVE}-{MAX_OCTAVE}).",
    )
    parser.add_argument(
        "--accidentals",
        dest="accidental_preference",
        choices=ACCIDENTAL_PREFERENCES,
        help="Spell black keys with sharps or flats.",
    )
    parser.add_argument("--rhythm-style", dest="rhythm_style", type=str, help="Melody rhythm style.")
    parser.add_argument("--density", dest="melody_density", type=float, help="Melody density 0-100.")
    parser.add_argument(
        "--chord-tone-preference",
        dest="chord_tone_preference",
        type=float,
        help="Chance (0-100) of choosing melody notes from the chord.",
    )
    parser.add_argument("--max-leap", dest="max_leap", type=int, help="Largest melodic interval in semitones.")
    parser.add_argument("--phrase-bars", dest="phrase_length_bars", type=int, help="Bars per melodic phrase.")
    parser.add_argument(
        "--motif-reuse",
        dest="motif_reuse_probability",
        type=float,
        help="Chance (0-100) that a phrase replays the opening motif.",
    )
    parser.add_argument(
        "--cadence-strength",
        dest="cadence_strength",
        type=float,
        help="How strongly phrase endings resolve (0-100).",
    )
    parser.add_argument("--harmonic-style", dest="harmonic_style", choices=HARMONIC_STYLES, help="Chord vocabulary.")
    parser.add_argument(
        "--deceptive-cadence",
        dest="deceptive_cadence",
        action="store_const",
        const=True,
        help="Resolve a final dominant to vi instead of I.",
    )
    parser.add_argument(
        "--natural-minor",
        dest="harmonic_minor_dominant",
        action="store_const",
        const=False,
        help="Use the natural minor scale instead of harmonic minor.",
    )
    parser.add_argument(
        "--melody-octave-shift",
        dest="melody_octave_shift",
        type=int,
        help="Octaves (0-2) to raise the melody above the chords.",
    )
    parser.add_argument("--tempo", type=float, help="Beats per minute for MIDI export.")
    parser.add_argument("--strum-ms", dest="strum_ms", type=float, help="Delay between chord voices in milliseconds.")

    parser.add_argument("--seed", type=int, help="Random seed for reproducible output")
    parser.add_argument("--output", type=str, help="JSON output path (stdout when omitted).")
    parser.add_argument("--midi", type=str, help="Also write a MIDI file to this path.")
    parser.add_argument("--program", type=int, default=0, help="MIDI program number for the melody")
    parser.add_argument("--no-humanize", dest="humanize", action="store_false", help="Disable timing and velocity randomization")
    parser.add_argument(
        "--settings-file",
        type=str,
        help="JSON settings file providing defaults for unset options",
    )
    parser.add_argument(
        "--save-settings",
        action="store_true",
        help="Store the resolved options in the settings file",
    )
    return parser


def _resolve_options(args: argparse.Namespace, settings: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay explicit command line options on the saved ``settings``."""

    merged: Dict[str, Any] = dict(settings)
    for dest in _CONFIG_DESTS:
        value = getattr(args, dest)
        if value is not None:
            merged[dest] = value
    return merged


def run_cli(argv: Optional[List[str]] = None) -> None:
    """Parse ``argv`` and generate a composition.

    Invalid options are logged and terminate the process with status ``1``.
    """

    args = build_parser().parse_args(argv)

    if args.list_keys:
        print("\n".join(sorted(NOTE_TO_PC)))
        return
    if args.list_styles:
        print("\n".join(sorted(RHYTHM_PRESETS)))
        return
    if args.list_patterns:
        print("\n".join(CHORD_PATTERNS))
        return

    settings_path = Path(args.settings_file).expanduser() if args.settings_file else DEFAULT_SETTINGS_FILE
    options = _resolve_options(args, load_settings(settings_path))

    try:
        config = GenerationConfig.from_mapping(options)
        composition = generate_composition(config, seed=args.seed)
    except CompositionError as exc:
        logging.error(str(exc))
        sys.exit(1)

    if args.save_settings:
        save_settings(config.to_dict(), settings_path)

    document = composition.to_json()
    if args.output:
        try:
            out = Path(args.output).expanduser()
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(document + "\n", encoding="utf-8")
        except OSError as exc:
            logging.error("Could not write JSON file: %s", exc)
            sys.exit(1)
        logging.info("Composition saved to %s", args.output)
    else:
        print(document)

    if args.midi:
        try:
            create_midi_file(
                composition,
                args.midi,
                tempo=config.tempo,
                strum_ms=config.strum_ms,
                chord_pattern=config.chord_pattern,
                program=args.program,
                humanize=args.humanize,
            )
        except CompositionError as exc:
            logging.error(str(exc))
            sys.exit(1)
        except OSError as exc:
            logging.error("Could not write MIDI file: %s", exc)
            sys.exit(1)


def main(argv: Optional[List[str]] = None) -> None:
    """Console entry point."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    run_cli(argv)
