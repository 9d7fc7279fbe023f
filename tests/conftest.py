"""Shared fixtures for the self-updater test suite."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from self_updater.config import get_settings


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep ``UPDATER_*`` variables and the settings cache out of every test."""
    for var in (
        "UPDATER_CONFIG_PATH",
        "UPDATER_STATE_PATH",
        "UPDATER_ENVIRONMENT",
        "UPDATER_LOG_LEVEL",
        "UPDATER_GIT_TOKEN",
    ):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
