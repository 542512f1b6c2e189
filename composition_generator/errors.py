"""Exception types raised by the composition engine.

Every error derives from :class:`CompositionError`, itself a ``ValueError`` so
callers that already guard generation with ``except ValueError`` keep working.
Generation is all-or-nothing: when one of these escapes no partial
:class:`~composition_generator.models.Composition` exists.
"""

from __future__ import annotations

__all__ = [
    "CompositionError",
    "InvalidPitchName",
    "UnknownKey",
    "MissingDiatonicEntry",
    "InvalidConfig",
]


class CompositionError(ValueError):
    """Base class for all engine errors."""


class InvalidPitchName(CompositionError):
    """A pitch or pitch-class string could not be parsed."""


class UnknownKey(CompositionError):
    """The requested key is not present in the pitch-class table."""


class MissingDiatonicEntry(CompositionError):
    """A diatonic table lacks an entry for a scale degree."""


class InvalidConfig(CompositionError):
    """A configuration option is outside its allowed range."""
