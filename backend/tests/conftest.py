"""Shared fixtures for the fixture sync test suite."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from shared.config import Settings
from ingest.normalization.team_names import ClubDirectory

NOW = datetime(2025, 11, 5, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    """Settings with every external side effect switched off."""
    return Settings(
        metrics_enabled=False,
        redis_enabled=False,
        circuit_breaker_enabled=False,
        football_data_api_key="",
        source_timezone="Europe/Zagreb",
    )


@pytest.fixture
def directory() -> ClubDirectory:
    return ClubDirectory.default()


@pytest.fixture
def now() -> datetime:
    return NOW
