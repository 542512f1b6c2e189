"""Phrase layout helpers for melody generation.

A phrase is a beat range of the progression's timeline.  The melody engine
works phrase by phrase: it captures a motif in the first suitable phrase,
may replay it in later ones and shapes a cadence at each phrase end.

:func:`plan_phrases` divides the timeline into equal phrases of
``phrase_length_bars`` bars; the final phrase is shorter when the total does
not divide evenly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

from .errors import InvalidConfig

__all__ = ["Phrase", "plan_phrases", "phrase_markers"]


@dataclass(frozen=True)
class Phrase:
    """Beat range ``[start_beat, end_beat)`` of phrase number ``index``."""

    index: int
    start_beat: float
    end_beat: float

    @property
    def beats(self) -> float:
        return self.end_beat - self.start_beat

    def contains(self, beat: float) -> bool:
        return self.start_beat <= beat < self.end_beat


def plan_phrases(total_beats: float, phrase_length_bars: int, beats_per_bar: int = 4) -> List[Phrase]:
    """Partition ``total_beats`` into consecutive phrases.

    Parameters
    ----------
    total_beats:
        Length of the timeline in beats. ``0`` yields no phrases.
    phrase_length_bars:
        Bars per phrase. Must be positive.
    beats_per_bar:
        Beats in one bar, ``4`` for the 4/4 timeline used throughout.

    Raises
    ------
    InvalidConfig
        If ``phrase_length_bars`` is not positive or ``total_beats`` is
        negative.
    """

    if phrase_length_bars <= 0:
        raise InvalidConfig("phrase_length_bars must be positive")
    if total_beats < 0:
        raise InvalidConfig("total_beats must not be negative")

    beats_per_phrase = phrase_length_bars * beats_per_bar
    count = math.ceil(total_beats / beats_per_phrase)
    return [
        Phrase(i, float(i * beats_per_phrase), float(min(total_beats, (i + 1) * beats_per_phrase)))
        for i in range(count)
    ]


def phrase_markers(phrases: List[Phrase]) -> List[float]:
    """Start beats of ``phrases``."""

    return [p.start_beat for p in phrases]
