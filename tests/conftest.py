"""Shared fixtures for the composition generator test-suite.

The repository root is placed on ``sys.path`` so the package imports without
being installed, mirroring how the individual test modules load it.
"""

from __future__ import annotations

import importlib
import random
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

config_module = importlib.import_module("composition_generator.config")


@pytest.fixture
def rng() -> random.Random:
    """Deterministic random source."""

    return random.Random(1234)


@pytest.fixture
def default_config():
    """Configuration with every option at its default."""

    return config_module.GenerationConfig()


@pytest.fixture
def make_config():
    """Factory building validated configurations from keyword overrides."""

    def _make(**overrides):
        return config_module.GenerationConfig.from_mapping(overrides)

    return _make


@pytest.fixture
def settings_path(tmp_path, monkeypatch) -> Path:
    """Temporary settings file so tests never touch the user's home directory."""

    path = tmp_path / "settings.json"
    monkeypatch.setattr(config_module, "DEFAULT_SETTINGS_FILE", path)
    return path
