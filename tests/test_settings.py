import pytest

from axon.domain.errors import ConfigurationError
from axon.domain.models import InjectionStrategy
from axon.infrastructure.config import Settings, SynthesisSettings, get_settings


def test_defaults():
    settings = Settings()

    assert settings.retrieval.default_limit == 10
    assert settings.retrieval.min_confidence == 0.3
    assert settings.evolution.temporal_decay_rate == 0.01
    assert settings.synthesis.total_tokens == 8192
    assert settings.injection.default_strategy == InjectionStrategy.HYBRID


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AXON_MODEL", "gpt-4-turbo")
    monkeypatch.setenv("AXON_ENABLE_VERSIONING", "false")
    monkeypatch.setenv("AXON_RETRIEVAL__DEFAULT_LIMIT", "5")
    monkeypatch.setenv("AXON_EVOLUTION__TEMPORAL_DECAY_RATE", "0.05")

    settings = Settings()

    assert settings.model == "gpt-4-turbo"
    assert settings.enable_versioning is False
    assert settings.retrieval.default_limit == 5
    assert settings.evolution.temporal_decay_rate == 0.05


def test_response_reserve_must_fit():
    with pytest.raises(ValueError):
        SynthesisSettings(total_tokens=1000, response_reserve=1000)


def test_thresholds_are_bounded(monkeypatch):
    monkeypatch.setenv("AXON_RETRIEVAL__MIN_CONFIDENCE", "1.5")

    with pytest.raises(ValueError):
        Settings()


def test_get_settings_reports_invalid_environment(monkeypatch):
    monkeypatch.setenv("AXON_RETRIEVAL__SEMANTIC_WEIGHT", "0.9")
    get_settings.cache_clear()

    try:
        with pytest.raises(ConfigurationError) as exc_info:
            get_settings()
    finally:
        get_settings.cache_clear()

    assert exc_info.value.status_code == 500
    assert exc_info.value.code == "CONFIGURATION_ERROR"
    assert exc_info.value.details["errors"]
