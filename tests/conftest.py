"""Shared pytest fixtures for phraselens tests."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from phraselens.config import ObserverConfig, Settings, get_settings
from phraselens.rewrite.patterns import build_pattern_table
from tests.helpers.dom_builders import SCENARIO_MAPPINGS

if TYPE_CHECKING:
    from collections.abc import Iterator

    from phraselens.rewrite.patterns import PatternTable


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep PHRASELENS_* env vars and the settings cache out of every test."""
    for key in list(os.environ):
        if key.startswith("PHRASELENS_"):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Default settings with no debounce, so async tests settle quickly."""
    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        observer=ObserverConfig(debounce_ms=0),
    )


@pytest.fixture
def scenario_table() -> PatternTable:
    return build_pattern_table(SCENARIO_MAPPINGS)
