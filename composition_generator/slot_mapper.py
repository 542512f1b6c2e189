"""Project a numeral sequence onto the chord slots of a progression.

The harmony walk produces ``progression_length`` numerals while the timeline
needs ``bars * chords_per_bar`` chords.  :func:`map_to_slots` reconciles the
two with one of three policies:

``loop``
    Repeat the sequence cyclically.
``stretch``
    Resample by proportional position so the overall shape is kept.
``default``
    Keep the sequence when lengths agree, pad with the final numeral when it
    is short, and when it is long keep the first and last numeral while
    resampling the interior.
"""

from __future__ import annotations

import logging
import math
from typing import List, Sequence

from .errors import InvalidConfig

__all__ = ["SLOT_POLICIES", "map_to_slots"]

logger = logging.getLogger(__name__)

SLOT_POLICIES = ("loop", "stretch", "default")


def _loop(numerals: Sequence[str], total_slots: int) -> List[str]:
    return [numerals[i % len(numerals)] for i in range(total_slots)]


def _stretch(numerals: Sequence[str], total_slots: int) -> List[str]:
    if total_slots == 1:
        return [numerals[0]]
    last = len(numerals) - 1
    out = []
    for i in range(total_slots):
        # Round half up so slot positions land on the nearest source index.
        idx = math.floor(i / (total_slots - 1) * last + 0.5)
        out.append(numerals[max(0, min(last, idx))])
    return out


def _default(numerals: Sequence[str], total_slots: int) -> List[str]:
    length = len(numerals)
    if length == total_slots:
        return list(numerals)
    if length < total_slots:
        return list(numerals) + [numerals[-1]] * (total_slots - length)
    if total_slots == 1:
        return [numerals[-1]]

    out = [numerals[0]] * total_slots
    out[-1] = numerals[-1]
    inner_source = length - 2
    for s in range(1, total_slots - 1):
        idx = 1 + math.floor(s / (total_slots - 1) * inner_source)
        out[s] = numerals[max(1, min(length - 2, idx))]
    return out


_POLICIES = {"loop": _loop, "stretch": _stretch, "default": _default}


def map_to_slots(numerals: Sequence[str], total_slots: int, policy: str = "default") -> List[str]:
    """Return ``total_slots`` numerals derived from ``numerals``.

    Zero (or negative) slots give an empty list and an empty input fills every
    slot with the tonic ``"1"``.

    Raises
    ------
    InvalidConfig
        If ``policy`` is not one of :data:`SLOT_POLICIES`.
    """

    if policy not in _POLICIES:
        raise InvalidConfig(f"Unknown slot mapping policy: {policy}")
    if total_slots <= 0:
        return []
    if not numerals:
        return ["1"] * total_slots

    mapped = _POLICIES[policy](numerals, total_slots)
    logger.debug("Mapped %s onto %d slots (%s): %s", list(numerals), total_slots, policy, mapped)
    return mapped
