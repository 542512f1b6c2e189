"""Generation options and persistent user settings.

:class:`GenerationConfig` is the single input record of the engine.  It is a
frozen dataclass so a configuration cannot change half way through a run.
``from_mapping`` builds one from loosely typed data (CLI arguments, a JSON
settings file or a web form) and accepts three spellings of every option:
the Python field name, the camelCase document name and the short names used
by older settings files.

Settings files are plain JSON.  Their default location can be overridden
with the ``COMPOSITION_SETTINGS_FILE`` environment variable so tests and
multi-user setups do not clobber each other's preferences.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from .errors import InvalidConfig
from .note_utils import canonical_key
from .slot_mapper import SLOT_POLICIES
from .theory import HARMONIC_STYLES, MODES

__all__ = [
    "MIN_OCTAVE",
    "MAX_OCTAVE",
    "ACCIDENTAL_PREFERENCES",
    "DEFAULT_SETTINGS_FILE",
    "GenerationConfig",
    "load_settings",
    "save_settings",
]

logger = logging.getLogger(__name__)

# Register anchor limits for chords.  The melody sits one octave higher plus
# up to two more octaves of shift, so octave 4 keeps everything well inside
# the MIDI range.
MIN_OCTAVE = 1
MAX_OCTAVE = 4

ACCIDENTAL_PREFERENCES = ("sharps", "flats")

env_path = os.environ.get("COMPOSITION_SETTINGS_FILE")
if env_path:
    DEFAULT_SETTINGS_FILE = Path(env_path).expanduser()
else:
    DEFAULT_SETTINGS_FILE = Path.home() / ".composition_generator_settings.json"

_PERCENT_FIELDS = (
    "melody_density",
    "chord_tone_preference",
    "motif_reuse_probability",
    "cadence_strength",
)
_POSITIVE_FIELDS = ("bars", "chords_per_bar", "progression_length", "phrase_length_bars")


@dataclass(frozen=True)
class GenerationConfig:
    """Options controlling one composition.

    Percentages are expressed ``0-100``.  ``chord_pattern``, ``tempo`` and
    ``strum_ms`` only affect export and playback.
    """

    key: str = "C"
    mode: str = "major"
    bars: int = 4
    chords_per_bar: int = 1
    progression_length: int = 4
    slot_mapping_policy: str = "default"
    chord_pattern: str = "sustain"
    octave: int = 3
    accidental_preference: str = "sharps"
    rhythm_style: str = "pop"
    melody_density: float = 70.0
    chord_tone_preference: float = 60.0
    max_leap: int = 7
    phrase_length_bars: int = 2
    motif_reuse_probability: float = 50.0
    cadence_strength: float = 70.0
    harmonic_style: str = "complex"
    deceptive_cadence: bool = False
    harmonic_minor_dominant: bool = True
    melody_octave_shift: int = 1
    tempo: float = 100.0
    strum_ms: float = 0.0

    @property
    def total_slots(self) -> int:
        """Number of chords in the progression (``bars * chords_per_bar``)."""

        return self.bars * self.chords_per_bar

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GenerationConfig":
        """Build and validate a configuration from ``data``.

        Unknown keys are ignored.  The key name is canonicalised so ``"db"``
        becomes ``"Db"``.

        Raises
        ------
        InvalidConfig
            If a value cannot be converted or is out of range.
        UnknownKey
            If ``key`` is not a recognised pitch class.
        """

        values: Dict[str, Any] = {}
        for name, raw in data.items():
            field_name = _ALIASES.get(name)
            if field_name is None:
                logger.debug("Ignoring unknown option %r", name)
                continue
            if raw is None:
                continue
            values[field_name] = _coerce(field_name, raw)

        config = cls(**values)
        config = replace(config, key=canonical_key(config.key))
        config.validate()
        return config

    def validate(self) -> None:
        """Raise :class:`InvalidConfig` (or ``UnknownKey``) for bad options."""

        canonical_key(self.key)
        if self.mode not in MODES:
            raise InvalidConfig(f"mode must be one of {', '.join(MODES)}")
        for name in _POSITIVE_FIELDS:
            if getattr(self, name) < 1:
                raise InvalidConfig(f"{name} must be a positive integer")
        if self.slot_mapping_policy not in SLOT_POLICIES:
            raise InvalidConfig(
                f"slot_mapping_policy must be one of {', '.join(SLOT_POLICIES)}"
            )
        if not MIN_OCTAVE <= self.octave <= MAX_OCTAVE:
            raise InvalidConfig(f"octave must be between {MIN_OCTAVE} and {MAX_OCTAVE}")
        if self.accidental_preference not in ACCIDENTAL_PREFERENCES:
            raise InvalidConfig("accidental_preference must be 'sharps' or 'flats'")
        for name in _PERCENT_FIELDS:
            if not 0 <= getattr(self, name) <= 100:
                raise InvalidConfig(f"{name} must be between 0 and 100")
        if self.max_leap < 0:
            raise InvalidConfig("max_leap must not be negative")
        if self.harmonic_style not in HARMONIC_STYLES:
            raise InvalidConfig(
                f"harmonic_style must be one of {', '.join(HARMONIC_STYLES)}"
            )
        if self.tempo <= 0:
            raise InvalidConfig("tempo must be positive")
        if self.strum_ms < 0:
            raise InvalidConfig("strum_ms must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        """Return the options keyed by their camelCase document names."""

        return {_CAMEL_NAMES[name]: value for name, value in asdict(self).items()}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


_FIELD_TYPES: Dict[str, type] = {}
_CAMEL_NAMES: Dict[str, str] = {}
_ALIASES: Dict[str, str] = {}
for _f in fields(GenerationConfig):
    _FIELD_TYPES[_f.name] = type(_f.default)
    _CAMEL_NAMES[_f.name] = _camel(_f.name)
    _ALIASES[_f.name] = _f.name
    _ALIASES[_camel(_f.name)] = _f.name
_ALIASES.update(
    {
        "progressionChords": "progression_length",
        "progressionPlayback": "slot_mapping_policy",
        "prefer": "accidental_preference",
        "chordTonePref": "chord_tone_preference",
        "phraseMeasures": "phrase_length_bars",
        "motifRepeat": "motif_reuse_probability",
        "melDensity": "melody_density",
    }
)

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


def _coerce(name: str, raw: Any) -> Any:
    """Convert ``raw`` to the type of field ``name``."""

    kind = _FIELD_TYPES[name]
    try:
        if kind is bool:
            if isinstance(raw, str):
                lowered = raw.strip().lower()
                if lowered in _TRUE_STRINGS:
                    return True
                if lowered in _FALSE_STRINGS:
                    return False
                raise ValueError(raw)
            return bool(raw)
        if kind is int:
            number = float(raw)
            if not number.is_integer():
                raise ValueError(raw)
            return int(number)
        if kind is float:
            return float(raw)
        return str(raw).strip()
    except (TypeError, ValueError) as exc:
        raise InvalidConfig(f"invalid value for {name}: {raw!r}") from exc


def load_settings(path: Path = DEFAULT_SETTINGS_FILE) -> dict:
    """Load saved user settings from ``path`` if it exists.

    @param path (Path): Location of the settings file.
    @returns dict: Loaded settings or an empty dictionary when unavailable.
    """
    path = Path(path)
    if path.is_file():
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.error("Could not load settings: %s", exc)
            return {}
        if isinstance(data, dict):
            return data
        logger.error("Settings file %s does not contain a JSON object", path)
    return {}


def save_settings(settings: Mapping[str, Any], path: Path = DEFAULT_SETTINGS_FILE) -> None:
    """Save user ``settings`` to ``path`` as JSON.

    @param settings (Mapping): Options to be persisted.
    @param path (Path): Destination file path.
    @returns None: Failures are logged so saving preferences never blocks
        generation.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(dict(settings), fh, indent=2)
    except (OSError, TypeError) as exc:
        logger.error("Could not save settings: %s", exc)
