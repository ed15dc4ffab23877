"""
Shared fixtures: zero-delay registry settings and a small local-name dictionary.
"""

from __future__ import annotations

import pytest

from app.config import ExternalHTTPSettings, PrimaryRegistrySettings, SecondaryRegistrySettings
from app.translation import LocalNameDictionary, LocalNameTranslator

LOCAL_NAMES = {
    "ingredients": {
        "ATORVASTATIN": "아토르바스타틴",
        "ASPIRIN": "아스피린",
        "CAFFEINE": "카페인",
        "METFORMIN": "메트포르민",
    },
    "brands": {
        "LIPITOR": "아토르바스타틴",
    },
}


@pytest.fixture()
def translator() -> LocalNameTranslator:
    return LocalNameTranslator(LocalNameDictionary.from_mapping(LOCAL_NAMES))


@pytest.fixture()
def http_settings() -> ExternalHTTPSettings:
    return ExternalHTTPSettings(timeout_seconds=5.0, max_attempts=3, backoff_seconds=0.0)


@pytest.fixture()
def primary_settings() -> PrimaryRegistrySettings:
    return PrimaryRegistrySettings(batch_size=2, batch_delay_seconds=0.0, fallback_delay_seconds=0.0)


@pytest.fixture()
def secondary_settings() -> SecondaryRegistrySettings:
    return SecondaryRegistrySettings(
        service_key="test-service-key",
        row_delay_seconds=0.0,
        fallback_delay_seconds=0.0,
    )
