"""Assemble a complete :class:`~composition_generator.models.Composition`.

The assembler runs the pipeline top to bottom for one configuration::

    numerals   = generate_numerals(progression_length)
    slots      = map_to_slots(numerals, bars * chords_per_bar, policy)
    chords     = [build_chord(n) for n in slots]
    voiced     = apply_voice_leading(apply_durations(chords))
    melody     = generate_melody(voiced)
    melody     = transpose_melody_octaves(melody, shift)

Every stochastic step draws from one ``random.Random`` created for the call
(or supplied by the caller), so the same seed and configuration always give
the same composition and separate calls never share generator state.
Generation is all-or-nothing: either a finished composition is returned or
an exception propagates.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Mapping, Optional, Union

from .config import GenerationConfig
from .harmony_generator import build_chord, generate_numerals
from .melody_engine import ChordTimeline, generate_melody, transpose_melody_octaves
from .models import Composition, Progression
from .motif import MelodySession
from .note_utils import canonical_key
from .slot_mapper import map_to_slots
from .voice_leading import apply_durations, apply_voice_leading

__all__ = ["build_progression", "generate_composition"]

logger = logging.getLogger(__name__)

ConfigLike = Union[GenerationConfig, Mapping[str, Any], None]


def _as_config(config: ConfigLike) -> GenerationConfig:
    if config is None:
        return GenerationConfig()
    if isinstance(config, GenerationConfig):
        config.validate()
        return config
    return GenerationConfig.from_mapping(config)


def build_progression(config: GenerationConfig, rng: random.Random) -> Progression:
    """Generate, map, build and voice the chords described by ``config``."""

    key = canonical_key(config.key)
    numerals = generate_numerals(config.progression_length, rng, config.deceptive_cadence)
    slots = map_to_slots(numerals, config.total_slots, config.slot_mapping_policy)

    chords = [
        build_chord(
            key,
            config.mode,
            int(numeral),
            config.octave,
            config.accidental_preference,
            rng,
            config.harmonic_style,
            config.harmonic_minor_dominant,
        )
        for numeral in slots
    ]
    logger.debug("Chord types: %s", [ch.chord_type for ch in chords])

    chords = apply_durations(chords, config.chords_per_bar)
    voiced = apply_voice_leading(chords, config.accidental_preference, key)
    return Progression(
        key=key,
        mode=config.mode,
        bars=config.bars,
        chords_per_bar=config.chords_per_bar,
        chord_pattern=config.chord_pattern,
        octave=config.octave,
        chords=tuple(voiced),
    )


def generate_composition(
    config: ConfigLike = None,
    *,
    seed: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> Composition:
    """Generate a chord progression and a melody over it.

    Parameters
    ----------
    config:
        A :class:`GenerationConfig`, a mapping accepted by
        :meth:`GenerationConfig.from_mapping`, or ``None`` for defaults.
    seed:
        Seed for a fresh ``random.Random``; ignored when ``rng`` is given.
    rng:
        Explicit random source.

    Returns
    -------
    Composition
        The finished, immutable composition.

    Raises
    ------
    CompositionError
        For invalid configuration values or an unknown key.
    """

    config = _as_config(config)
    if rng is None:
        rng = random.Random(seed)

    progression = build_progression(config, rng)
    result = generate_melody(progression, config, session=MelodySession(rng))
    melody = transpose_melody_octaves(
        result.notes,
        ChordTimeline.from_progression(progression),
        config.melody_octave_shift,
        config.accidental_preference,
        progression.key,
    )

    composition = Composition(
        progression=progression,
        melody=tuple(melody),
        phrase_markers=result.phrase_markers,
        total_beats=result.total_beats,
        seed=seed,
    )
    logger.info(
        "Generated %d bars: %d chords, %d melody notes",
        progression.bars,
        len(progression.chords),
        len(composition.pitched_notes),
    )
    return composition
